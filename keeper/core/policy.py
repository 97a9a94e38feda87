"""
Authorization policy.

One place decides whether a principal may perform an action on a resource.
Services call require() instead of comparing owner ids and roles inline.
"""

import logging
from typing import Any, Optional

from keeper.core.errors import Forbidden, NotFound
from keeper.models.user import Role, User

logger = logging.getLogger(__name__)

FILE_READ = "file:read"
FILE_WRITE = "file:write"
FOLDER_READ = "folder:read"
FOLDER_WRITE = "folder:write"
USER_ADMIN = "user:admin"

_OWNER_ONLY = {FILE_WRITE, FOLDER_READ, FOLDER_WRITE}


def _owns(principal: User, resource: Any) -> bool:
    return resource is not None and resource.user_id == principal.id


def authorize(principal: User, action: str, resource: Optional[Any] = None) -> bool:
    if principal is None or not principal.is_active:
        return False

    if action == USER_ADMIN:
        return principal.role == Role.ADMIN
    if action == FILE_READ:
        return _owns(principal, resource) or bool(resource is not None and resource.is_public)
    if action in _OWNER_ONLY:
        return _owns(principal, resource)

    raise ValueError(f"Unknown action: {action}")


def require(principal: User, action: str, resource: Optional[Any] = None, label: str = "Resource") -> None:
    """
    Raise unless authorize() allows the action.

    Denied resource access is reported as NotFound so callers cannot tell
    another user's resource from a missing one.
    """
    if authorize(principal, action, resource):
        return

    if action == USER_ADMIN:
        logger.warning(f"User {principal.id} denied {action}")
        raise Forbidden("Access denied. Admin role required.")
    raise NotFound(f"{label} not found")
