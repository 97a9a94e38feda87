from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from keeper.core.errors import Unauthorized
from keeper.models.database import SessionLocal
from keeper.models.user import User
from keeper.services.auth import AuthService
from keeper.storage import ObjectStore, get_object_store

bearer_scheme = HTTPBearer(auto_error=False)


# DB session dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store() -> ObjectStore:
    return get_object_store()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """The authenticated principal. Never taken from request bodies."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access token required")
    return AuthService(db).authenticate(credentials.credentials)
