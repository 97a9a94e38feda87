# keeper/models/file.py
import uuid
from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from keeper.models.database import Base


class FileMeta(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)            # display name, renamable
    original_name = Column(String(255), nullable=False)   # name user uploaded
    storage_key = Column(String(1024), nullable=False)    # key in the object store
    size = Column(BigInteger, nullable=False)             # size in bytes
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    extension = Column(String(50), nullable=False, default="")
    content_hash = Column(String(64), nullable=False, index=True)  # sha256 hex of the stored bytes
    description = Column(Text)
    tags = Column(JSON, nullable=False, default=list)
    is_public = Column(Boolean, nullable=False, default=False)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    folder_id = Column(String(36), ForeignKey("folders.id"), index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Many files → one owner (User)
    owner = relationship("User", back_populates="files")
    folder = relationship("Folder", back_populates="files")
