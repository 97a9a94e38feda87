import json
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File as FastAPIFile, Form, Query, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from keeper.core.config import Settings, get_settings
from keeper.core.errors import ValidationFailed
from keeper.models.user import User
from keeper.routers.deps import get_current_user, get_db, get_store
from keeper.schemas.common import Pagination, envelope
from keeper.schemas.file import FileDetail, FileMove, FileOut, FileUpdate
from keeper.services.files import FileService, Upload, file_extension
from keeper.storage import ObjectStore

router = APIRouter(prefix="/api/files", tags=["files"])


def get_file_service(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> FileService:
    return FileService(db, user, store, upload_prefix=settings.upload_prefix)


# --- helper: parse tags sent as a JSON array or a comma separated string ---
def parse_tags(raw: Optional[str]) -> list[str]:
    if not raw or not raw.strip():
        return []
    raw = raw.strip()
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except ValueError:
            raise ValidationFailed([{"field": "tags", "message": "Tags must be a JSON array or a comma separated list"}])
        if not isinstance(values, list):
            raise ValidationFailed([{"field": "tags", "message": "Tags must be a JSON array or a comma separated list"}])
        return [str(v).strip() for v in values if str(v).strip()]
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def validate_uploads(uploads: list[Upload], settings: Settings, field: str) -> None:
    """Size, type and count checks applied before anything reaches storage."""
    errors = []
    if not uploads:
        errors.append({"field": field, "message": "No file provided"})
    if len(uploads) > settings.max_files_per_upload:
        errors.append({"field": field, "message": f"Maximum {settings.max_files_per_upload} files allowed per upload"})

    allowed = settings.allowed_extensions
    for upload in uploads:
        if len(upload.data) > settings.max_file_size:
            errors.append({"field": field, "message": f"File {upload.original_name} exceeds maximum size limit"})
        ext = file_extension(upload.original_name)
        # an empty allow-list means every type is accepted
        if allowed and ext not in allowed:
            errors.append({"field": field, "message": f"File type .{ext} is not allowed for {upload.original_name}"})

    if errors:
        raise ValidationFailed(errors)


def content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


async def _read(upload: UploadFile) -> Upload:
    content = await upload.read()
    return Upload(data=content, original_name=upload.filename or "file", mime_type=upload.content_type)


# --- list the user's files ---
@router.get("")
def list_files(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    folder_id: Optional[str] = Query(None, alias="folderId"),
    search: Optional[str] = None,
    sort_by: str = Query("uploadedAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    service: FileService = Depends(get_file_service),
):
    files, total = service.list_files(
        folder_id=folder_id,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return envelope(
        "Files retrieved successfully",
        {"files": [FileOut.model_validate(f).dump() for f in files]},
        pagination=Pagination.build(page, limit, total),
    )


# --- upload a new file ---
@router.post("/upload")
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    folder_id: Optional[str] = Form(None, alias="folderId"),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    is_public: bool = Form(False, alias="isPublic"),
    service: FileService = Depends(get_file_service),
    settings: Settings = Depends(get_settings),
):
    upload = await _read(file)
    validate_uploads([upload], settings, field="file")

    meta = service.upload_file(
        upload,
        folder_id=folder_id,
        description=description,
        tags=parse_tags(tags),
        is_public=is_public,
    )
    return JSONResponse(
        status_code=201,
        content=envelope("File uploaded successfully", {"file": FileOut.model_validate(meta).dump()}),
    )


# --- upload several files, each one independently ---
@router.post("/upload-multiple")
async def upload_files(
    files: list[UploadFile] = FastAPIFile(...),
    folder_id: Optional[str] = Form(None, alias="folderId"),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    is_public: bool = Form(False, alias="isPublic"),
    service: FileService = Depends(get_file_service),
    settings: Settings = Depends(get_settings),
):
    uploads = [await _read(f) for f in files]
    validate_uploads(uploads, settings, field="files")

    uploaded, failed = service.upload_files(
        uploads,
        folder_id=folder_id,
        description=description,
        tags=parse_tags(tags),
        is_public=is_public,
    )
    return JSONResponse(
        status_code=201,
        content=envelope(
            f"{len(uploaded)} files uploaded successfully",
            {"files": [FileOut.model_validate(f).dump() for f in uploaded], "failed": failed},
        ),
    )


@router.get("/{file_id}")
def get_file(file_id: str, service: FileService = Depends(get_file_service)):
    meta = service.get_file(file_id)
    return envelope("File retrieved successfully", {"file": FileDetail.model_validate(meta).dump()})


# --- download a file ---
@router.get("/{file_id}/download")
def download_file(file_id: str, service: FileService = Depends(get_file_service)):
    meta, stored = service.download_file(file_id)
    return StreamingResponse(
        stored.body,
        media_type=meta.mime_type or stored.info.content_type,
        headers={
            "Content-Disposition": content_disposition(meta.original_name),
            "Content-Length": str(meta.size),
        },
    )


@router.get("/{file_id}/url")
def presigned_url(
    file_id: str,
    expires_in: int = Query(3600, alias="expiresIn", ge=60, le=7 * 24 * 3600),
    service: FileService = Depends(get_file_service),
):
    url = service.presigned_url(file_id, expires_in=expires_in)
    return envelope("Download URL generated", {"url": url, "expiresIn": expires_in})


# --- rename / describe / tag / share a file ---
@router.put("/{file_id}")
def update_file(file_id: str, payload: FileUpdate, service: FileService = Depends(get_file_service)):
    meta = service.update_file(file_id, **payload.model_dump(exclude_unset=True))
    return envelope("File updated successfully", {"file": FileOut.model_validate(meta).dump()})


@router.put("/{file_id}/move")
def move_file(file_id: str, payload: FileMove, service: FileService = Depends(get_file_service)):
    meta = service.move_file(file_id, folder_id=payload.folder_id)
    return envelope("File moved successfully", {"file": FileDetail.model_validate(meta).dump()})


# --- delete a file ---
@router.delete("/{file_id}")
def delete_file(file_id: str, service: FileService = Depends(get_file_service)):
    service.delete_file(file_id)
    return envelope("File deleted successfully")
