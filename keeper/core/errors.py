"""
Error taxonomy shared by every service.

Services raise these; the HTTP layer turns them into response envelopes.
Dependency exceptions (SQLAlchemy, botocore) never leave a service unmapped.
"""

from typing import Optional


class KeeperError(Exception):
    """Base error carrying the HTTP status it should surface as."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(KeeperError):
    """Malformed or missing input. Carries per-field messages."""

    status_code = 400

    def __init__(self, errors: list[dict], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors


class BadRequest(KeeperError):
    status_code = 400


class Unauthorized(KeeperError):
    status_code = 401


class Forbidden(KeeperError):
    status_code = 403


class NotFound(KeeperError):
    status_code = 404


class Conflict(KeeperError):
    status_code = 409


class TooManyRequests(KeeperError):
    status_code = 429


class StorageFailure(KeeperError):
    """Object store put/get/delete error. The cause is logged, never returned."""

    status_code = 500

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)


class ObjectNotFound(StorageFailure):
    """Raised by an object store when the key does not exist."""

    status_code = 404

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key
