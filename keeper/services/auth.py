import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from keeper.core.errors import Conflict, Unauthorized
from keeper.core.security import create_access_token, decode_access_token, hash_password, verify_password
from keeper.models.analytics import EventType
from keeper.models.file import FileMeta
from keeper.models.folder import Folder
from keeper.models.user import Role, User
from keeper.services.analytics import record_event

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "avatar")


def issue_token(user: User) -> str:
    return create_access_token(user.id, user.email, user.role.value)


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> tuple[User, str]:
        email = email.strip().lower()
        existing = (
            self.db.query(User)
            .filter(or_(User.email == email, User.username == username))
            .first()
        )
        if existing:
            raise Conflict("User with this email or username already exists")

        user = User(
            email=email,
            username=username,
            first_name=first_name,
            last_name=last_name,
            password=hash_password(password),
            role=Role.USER,
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("User with this email or username already exists")
        self.db.refresh(user)

        logger.info(f"Registered user {user.id} ({user.username})")
        return user, issue_token(user)

    def login(self, email: str, password: str) -> tuple[User, str]:
        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or not user.is_active or not verify_password(user.password, password):
            raise Unauthorized("Invalid credentials")

        record_event(self.db, EventType.USER_LOGIN, "login", user_id=user.id)
        self.db.commit()
        return user, issue_token(user)

    def authenticate(self, token: str) -> User:
        """Resolve a bearer token to a live, active user."""
        claims = decode_access_token(token)
        user = self.db.get(User, claims["userId"])
        if user is None or not user.is_active:
            raise Unauthorized("User not found or inactive")
        return user

    def update_profile(self, user: User, **fields) -> User:
        for name, value in fields.items():
            if name not in PROFILE_FIELDS:
                continue
            setattr(user, name, value)
        self.db.commit()
        self.db.refresh(user)
        return user

    def usage_stats(self, user: User) -> dict:
        file_count = self.db.query(FileMeta).filter(FileMeta.user_id == user.id).count()
        folder_count = self.db.query(Folder).filter(Folder.user_id == user.id).count()
        total_size = (
            self.db.query(func.sum(FileMeta.size)).filter(FileMeta.user_id == user.id).scalar()
        )
        return {
            "file_count": file_count,
            "folder_count": folder_count,
            "total_size": str(total_size or 0),
        }
