import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, String
from sqlalchemy.orm import relationship

from keeper.models.database import Base


class Role(str, enum.Enum):
    USER = "USER"
    EDITOR = "EDITOR"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)  # stored lower-cased
    username = Column(String(50), unique=True, index=True, nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    avatar = Column(String(500))
    password = Column(String(255), nullable=False)  # digest, never serialized
    role = Column(Enum(Role, name="user_role"), default=Role.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # One user → many folders / files
    folders = relationship("Folder", back_populates="owner")
    files = relationship("FileMeta", back_populates="owner")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
