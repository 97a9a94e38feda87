from datetime import datetime
from typing import Optional

from pydantic import Field

from keeper.schemas.common import CamelModel
from keeper.schemas.file import FileOut


class FolderOut(CamelModel):
    id: str
    name: str
    path: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    user_id: str
    created_at: datetime
    updated_at: datetime


class FolderDetail(FolderOut):
    parent: Optional[FolderOut] = None
    children: list[FolderOut] = []
    files: list[FileOut] = []


class FolderCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[str] = None


class FolderUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
