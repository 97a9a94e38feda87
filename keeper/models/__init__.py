from .analytics import AnalyticsEvent, EventType
from .file import FileMeta
from .folder import Folder
from .user import Role, User

__all__ = ["AnalyticsEvent", "EventType", "FileMeta", "Folder", "Role", "User"]
