"""
File metadata and body storage.

Upload writes the body to the object store first and the metadata row second;
delete removes the body first and the row second. There is no transaction
spanning both stores:

- a failed object write leaves no row behind;
- a failed row insert after a successful object write triggers a best-effort
  delete of the fresh object (logged if that fails too);
- a failed object delete keeps the row, so the pointer to possibly surviving
  bytes is not lost.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from keeper.core import policy
from keeper.core.errors import BadRequest, KeeperError, NotFound, ObjectNotFound, StorageFailure
from keeper.models.analytics import EventType
from keeper.models.file import FileMeta
from keeper.models.folder import Folder
from keeper.models.user import User
from keeper.services.analytics import record_event
from keeper.storage.base import HASH_META_KEY, NAME_META_KEY, ObjectStore, StoredObject

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
UPDATABLE_FIELDS = ("name", "description", "tags", "is_public")


@dataclass
class Upload:
    """One file body as received from the client."""

    data: bytes
    original_name: str
    mime_type: Optional[str] = None


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_extension(name: str) -> str:
    return PurePosixPath(name).suffix.lower().lstrip(".")


def escape_like(term: str) -> str:
    """Make % and _ match literally in a LIKE pattern using backslash as escape."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FileService:
    def __init__(self, db: Session, user: User, store: ObjectStore, upload_prefix: str = "uploads"):
        self.db = db
        self.user = user
        self.store = store
        self.upload_prefix = upload_prefix.strip("/")

    # --- helpers ---

    def _get(self, file_id: str, action: str) -> FileMeta:
        file = self.db.get(FileMeta, file_id)
        policy.require(self.user, action, file, label="File")
        return file

    def _owned_folder(self, folder_id: str) -> Optional[Folder]:
        folder = self.db.get(Folder, folder_id)
        if not policy.authorize(self.user, policy.FOLDER_WRITE, folder):
            return None
        return folder

    def storage_key(self, digest: str, original_name: str) -> str:
        safe_name = secure_filename(original_name) or "file"
        return f"{self.upload_prefix}/{self.user.id}/{digest}_{safe_name}"

    def _key_shared(self, key: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(FileMeta.id).filter(FileMeta.storage_key == key)
        if exclude_id is not None:
            query = query.filter(FileMeta.id != exclude_id)
        return query.first() is not None

    # --- upload ---

    def upload_file(
        self,
        upload: Upload,
        folder_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        is_public: bool = False,
    ) -> FileMeta:
        if folder_id and self._owned_folder(folder_id) is None:
            raise NotFound("Folder not found")
        return self._store_one(upload, folder_id, description, tags, is_public)

    def upload_files(
        self,
        uploads: list[Upload],
        folder_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        is_public: bool = False,
    ) -> tuple[list[FileMeta], list[dict]]:
        """
        Upload each file independently.

        A failing file is logged and skipped; the rest still go through.

        Returns:
            (uploaded rows, [{"name": ..., "message": ...}] for the failures)
        """
        if folder_id and self._owned_folder(folder_id) is None:
            raise NotFound("Folder not found")

        uploaded = []
        failed = []
        for upload in uploads:
            try:
                uploaded.append(self._store_one(upload, folder_id, description, tags, is_public))
            except KeeperError as e:
                logger.error(f"Error uploading file {upload.original_name}: {e.message}")
                failed.append({"name": upload.original_name, "message": e.message})
        return uploaded, failed

    def _store_one(
        self,
        upload: Upload,
        folder_id: Optional[str],
        description: Optional[str],
        tags: Optional[list[str]],
        is_public: bool,
    ) -> FileMeta:
        digest = content_hash(upload.data)
        key = self.storage_key(digest, upload.original_name)
        mime_type = upload.mime_type or DEFAULT_MIME_TYPE

        # raises StorageFailure before any row exists
        self.store.put(
            key,
            upload.data,
            content_type=mime_type,
            metadata={HASH_META_KEY: digest, NAME_META_KEY: upload.original_name},
        )

        file = FileMeta(
            name=upload.original_name,
            original_name=upload.original_name,
            storage_key=key,
            size=len(upload.data),
            mime_type=mime_type,
            extension=file_extension(upload.original_name),
            content_hash=digest,
            description=description,
            tags=list(tags or []),
            is_public=bool(is_public),
            folder_id=folder_id or None,
            user_id=self.user.id,
        )
        try:
            self.db.add(file)
            self.db.flush()
            record_event(
                self.db,
                EventType.FILE_UPLOAD,
                "upload",
                user_id=self.user.id,
                file_id=file.id,
                details={"fileName": file.name, "fileSize": str(file.size)},
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to save metadata for {key}")
            self._discard_orphan(key)
            raise KeeperError("Failed to save file metadata")

        self.db.refresh(file)
        logger.info(f"User {self.user.id} uploaded {file.id} ({file.size} bytes) to {key}")
        return file

    def _discard_orphan(self, key: str) -> None:
        try:
            if self._key_shared(key):
                return
        except SQLAlchemyError:
            # cannot tell whether another row still uses the key, so keep the object
            logger.exception(f"Orphaned object left in storage: {key}")
            return
        try:
            self.store.delete(key)
        except StorageFailure:
            logger.error(f"Orphaned object left in storage: {key}")

    # --- read ---

    def list_files(
        self,
        folder_id: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "uploadedAt",
        sort_order: str = "desc",
    ) -> tuple[list[FileMeta], int]:
        query = self.db.query(FileMeta).filter(FileMeta.user_id == self.user.id)
        if folder_id:
            query = query.filter(FileMeta.folder_id == folder_id)
        if search and search.strip():
            term = f"%{escape_like(search.strip())}%"
            query = query.filter(
                or_(
                    FileMeta.name.ilike(term, escape="\\"),
                    FileMeta.original_name.ilike(term, escape="\\"),
                    FileMeta.description.ilike(term, escape="\\"),
                )
            )

        total = query.count()
        # sort_by is accepted but listings are always ordered by upload time
        order = FileMeta.uploaded_at.asc() if sort_order == "asc" else FileMeta.uploaded_at.desc()
        files = query.order_by(order).offset((page - 1) * limit).limit(limit).all()
        return files, total

    def get_file(self, file_id: str) -> FileMeta:
        return self._get(file_id, policy.FILE_READ)

    def download_file(self, file_id: str) -> tuple[FileMeta, StoredObject]:
        file = self._get(file_id, policy.FILE_READ)
        try:
            stored = self.store.get(file.storage_key)
        except ObjectNotFound:
            logger.warning(f"File {file.id} has no object at {file.storage_key}")
            raise NotFound("File not found in storage")

        record_event(
            self.db,
            EventType.FILE_DOWNLOAD,
            "download",
            user_id=self.user.id,
            file_id=file.id,
            details={"fileName": file.name, "fileSize": str(file.size)},
        )
        self.db.commit()
        return file, stored

    def presigned_url(self, file_id: str, expires_in: int = 3600) -> str:
        file = self._get(file_id, policy.FILE_READ)
        return self.store.presign(file.storage_key, expires_in=expires_in)

    # --- write ---

    def update_file(self, file_id: str, **changes) -> FileMeta:
        file = self._get(file_id, policy.FILE_WRITE)
        for name in UPDATABLE_FIELDS:
            if name not in changes:
                continue
            value = changes[name]
            if name in ("name", "tags", "is_public") and value is None:
                continue
            setattr(file, name, list(value) if name == "tags" else value)
        self.db.commit()
        self.db.refresh(file)
        return file

    def move_file(self, file_id: str, folder_id: Optional[str] = None) -> FileMeta:
        file = self._get(file_id, policy.FILE_WRITE)
        if folder_id and self._owned_folder(folder_id) is None:
            raise BadRequest("Target folder not found")

        file.folder_id = folder_id or None
        self.db.commit()
        self.db.refresh(file)
        return file

    def delete_file(self, file_id: str) -> None:
        file = self._get(file_id, policy.FILE_WRITE)

        # raises StorageFailure and keeps the row when the object delete fails
        if not self._key_shared(file.storage_key, exclude_id=file.id):
            self.store.delete(file.storage_key)

        record_event(
            self.db,
            EventType.FILE_DELETE,
            "delete",
            user_id=self.user.id,
            file_id=file.id,
            details={"fileName": file.name, "fileSize": str(file.size)},
        )
        self.db.delete(file)
        self.db.commit()
        logger.info(f"User {self.user.id} deleted file {file_id}")
