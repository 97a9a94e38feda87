import logging
from typing import Optional

from sqlalchemy.orm import Session

from keeper.core import policy
from keeper.core.errors import Conflict, NotFound, ValidationFailed
from keeper.models.analytics import EventType
from keeper.models.file import FileMeta
from keeper.models.folder import Folder
from keeper.models.user import User
from keeper.services.analytics import record_event

logger = logging.getLogger(__name__)


def build_path(name: str, parent: Optional[Folder] = None) -> str:
    return f"{parent.path}/{name}" if parent else f"/{name}"


class FolderService:
    """Folder tree of one user. Every operation is scoped to ``user``."""

    def __init__(self, db: Session, user: User):
        self.db = db
        self.user = user

    def _get(self, folder_id: str, action: str) -> Folder:
        folder = self.db.get(Folder, folder_id)
        policy.require(self.user, action, folder, label="Folder")
        return folder

    def list_folders(self) -> list[Folder]:
        return (
            self.db.query(Folder)
            .filter(Folder.user_id == self.user.id)
            .order_by(Folder.created_at.desc())
            .all()
        )

    def get_folder(self, folder_id: str) -> Folder:
        return self._get(folder_id, policy.FOLDER_READ)

    def create_folder(self, name: str, description: Optional[str] = None, parent_id: Optional[str] = None) -> Folder:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed([{"field": "name", "message": "Folder name is required"}])

        parent = None
        if parent_id:
            parent = self.db.get(Folder, parent_id)
            if not policy.authorize(self.user, policy.FOLDER_WRITE, parent):
                raise NotFound("Parent folder not found")

        folder = Folder(
            name=name,
            path=build_path(name, parent),
            description=description or None,
            parent_id=parent.id if parent else None,
            user_id=self.user.id,
        )
        self.db.add(folder)
        self.db.flush()
        record_event(self.db, EventType.FOLDER_CREATE, "create", user_id=self.user.id, details={"folderId": folder.id, "path": folder.path})
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def update_folder(self, folder_id: str, **changes) -> Folder:
        """Partial update; only the keys present in ``changes`` are touched."""
        folder = self._get(folder_id, policy.FOLDER_WRITE)

        if "description" in changes:
            folder.description = changes["description"]
        name = changes.get("name")
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed([{"field": "name", "message": "Folder name is required"}])
            if name != folder.name:
                folder.name = name
                self._rewrite_paths(folder)

        self.db.commit()
        self.db.refresh(folder)
        return folder

    def _rewrite_paths(self, folder: Folder) -> None:
        # sibling names may repeat, so walk the subtree instead of matching path prefixes
        pending = [folder]
        while pending:
            node = pending.pop()
            node.path = build_path(node.name, node.parent)
            pending.extend(node.children)

    def delete_folder(self, folder_id: str) -> None:
        folder = self._get(folder_id, policy.FOLDER_WRITE)

        has_children = self.db.query(Folder.id).filter(Folder.parent_id == folder.id).first() is not None
        has_files = self.db.query(FileMeta.id).filter(FileMeta.folder_id == folder.id).first() is not None
        if has_children or has_files:
            raise Conflict("Cannot delete folder with contents. Please remove all files and subfolders first.")

        record_event(self.db, EventType.FOLDER_DELETE, "delete", user_id=self.user.id, details={"folderId": folder.id, "path": folder.path})
        self.db.delete(folder)
        self.db.commit()
        logger.info(f"User {self.user.id} deleted folder {folder_id}")
