from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from keeper.models.user import User
from keeper.routers.deps import get_current_user, get_db
from keeper.schemas.common import envelope
from keeper.schemas.folder import FolderCreate, FolderDetail, FolderOut, FolderUpdate
from keeper.services.folders import FolderService

router = APIRouter(prefix="/api/folders", tags=["folders"])


def get_folder_service(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> FolderService:
    return FolderService(db, user)


@router.get("")
def list_folders(service: FolderService = Depends(get_folder_service)):
    folders = service.list_folders()
    return envelope("Folders retrieved successfully", {"folders": [FolderOut.model_validate(f).dump() for f in folders]})


@router.post("")
def create_folder(payload: FolderCreate, service: FolderService = Depends(get_folder_service)):
    folder = service.create_folder(payload.name, description=payload.description, parent_id=payload.parent_id)
    return JSONResponse(
        status_code=201,
        content=envelope("Folder created successfully", {"folder": FolderOut.model_validate(folder).dump()}),
    )


@router.get("/{folder_id}")
def get_folder(folder_id: str, service: FolderService = Depends(get_folder_service)):
    folder = service.get_folder(folder_id)
    return envelope("Folder retrieved successfully", {"folder": FolderDetail.model_validate(folder).dump()})


@router.put("/{folder_id}")
def update_folder(folder_id: str, payload: FolderUpdate, service: FolderService = Depends(get_folder_service)):
    folder = service.update_folder(folder_id, **payload.model_dump(exclude_unset=True))
    return envelope("Folder updated successfully", {"folder": FolderOut.model_validate(folder).dump()})


@router.delete("/{folder_id}")
def delete_folder(folder_id: str, service: FolderService = Depends(get_folder_service)):
    service.delete_folder(folder_id)
    return envelope("Folder deleted successfully")
