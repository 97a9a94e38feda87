import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Enum, String

from keeper.models.database import Base


class EventType(str, enum.Enum):
    FILE_UPLOAD = "FILE_UPLOAD"
    FILE_DOWNLOAD = "FILE_DOWNLOAD"
    FILE_DELETE = "FILE_DELETE"
    USER_LOGIN = "USER_LOGIN"
    FOLDER_CREATE = "FOLDER_CREATE"
    FOLDER_DELETE = "FOLDER_DELETE"


class AnalyticsEvent(Base):
    __tablename__ = "analytics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(Enum(EventType, name="event_type"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    details = Column(JSON)
    # plain columns: events outlive the rows they describe
    user_id = Column(String(36), index=True)
    file_id = Column(String(36), index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
