from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from keeper.models.user import Role
from keeper.schemas.common import CamelModel


class UserOut(CamelModel):
    id: str
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    role: Role
    is_active: bool
    created_at: datetime
    updated_at: datetime


class RegisterRequest(CamelModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    password: str = Field(min_length=8)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=500)


class UserCreate(CamelModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=6)
    role: Optional[Role] = None


class UserUpdate(CamelModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class UsageStats(CamelModel):
    file_count: int
    folder_count: int
    total_size: str  # decimal string, sizes can exceed JS safe integers
