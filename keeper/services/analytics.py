from typing import Optional

from sqlalchemy.orm import Session

from keeper.models.analytics import AnalyticsEvent, EventType


def record_event(
    db: Session,
    type: EventType,
    action: str,
    user_id: Optional[str] = None,
    file_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> AnalyticsEvent:
    """Add an event to the session. The caller's commit persists it."""
    event = AnalyticsEvent(type=type, action=action, user_id=user_id, file_id=file_id, details=details)
    db.add(event)
    return event
