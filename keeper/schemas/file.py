from datetime import datetime
from typing import Optional

from pydantic import Field, field_serializer

from keeper.schemas.common import CamelModel


class FileOut(CamelModel):
    id: str
    name: str
    original_name: str
    storage_key: str
    size: int
    mime_type: str
    extension: str
    content_hash: str
    description: Optional[str] = None
    tags: list[str] = []
    is_public: bool
    folder_id: Optional[str] = None
    user_id: str
    uploaded_at: datetime
    updated_at: datetime

    @field_serializer("size")
    def _size_as_string(self, size: int) -> str:
        return str(size)


class FolderRef(CamelModel):
    id: str
    name: str
    path: str


class OwnerSummary(CamelModel):
    id: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class FileDetail(FileOut):
    """Single-file view: the row plus its folder and an owner summary."""

    folder: Optional[FolderRef] = None
    # read from FileMeta.owner, sent as "user"
    user: Optional[OwnerSummary] = Field(default=None, validation_alias="owner")


class FileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    tags: Optional[list[str]] = None
    is_public: Optional[bool] = None


class FileMove(CamelModel):
    folder_id: Optional[str] = None
