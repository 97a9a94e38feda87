import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from keeper.core import policy
from keeper.core.errors import BadRequest, Conflict, NotFound
from keeper.core.security import hash_password
from keeper.models.file import FileMeta
from keeper.models.folder import Folder
from keeper.models.user import Role, User

logger = logging.getLogger(__name__)

ADMIN_FIELDS = ("email", "username", "first_name", "last_name", "role", "is_active")


class UserAdminService:
    """Account administration. Every operation requires an ADMIN principal."""

    def __init__(self, db: Session, admin: User):
        policy.require(admin, policy.USER_ADMIN)
        self.db = db
        self.admin = admin

    def _get(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def _check_unique(self, email: Optional[str], username: Optional[str], exclude_id: Optional[str] = None) -> None:
        if email:
            query = self.db.query(User.id).filter(User.email == email)
            if exclude_id:
                query = query.filter(User.id != exclude_id)
            if query.first():
                raise Conflict("Email already exists")
        if username:
            query = self.db.query(User.id).filter(User.username == username)
            if exclude_id:
                query = query.filter(User.id != exclude_id)
            if query.first():
                raise Conflict("Username already exists")

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Email or username already exists")

    def list_users(self) -> list[User]:
        return self.db.query(User).order_by(User.created_at.desc()).all()

    def get_user(self, user_id: str) -> User:
        return self._get(user_id)

    def create_user(
        self,
        email: str,
        username: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: Optional[Role] = None,
    ) -> User:
        email = email.strip().lower()
        self._check_unique(email, username)

        user = User(
            email=email,
            username=username,
            first_name=first_name,
            last_name=last_name,
            password=hash_password(password),
            role=role or Role.USER,
            is_active=True,
        )
        self.db.add(user)
        self._commit()
        self.db.refresh(user)
        logger.info(f"Admin {self.admin.id} created user {user.id} with role {user.role.value}")
        return user

    def update_user(self, user_id: str, **changes) -> User:
        user = self._get(user_id)

        if changes.get("email"):
            changes["email"] = changes["email"].strip().lower()
        self._check_unique(changes.get("email"), changes.get("username"), exclude_id=user.id)

        if user.id == self.admin.id and changes.get("is_active") is False:
            raise BadRequest("Cannot deactivate your own account")

        for name in ADMIN_FIELDS:
            value = changes.get(name)
            if value is None:
                continue
            setattr(user, name, value)
        self._commit()
        self.db.refresh(user)
        logger.info(f"Admin {self.admin.id} updated user {user.id}")
        return user

    def delete_user(self, user_id: str) -> None:
        if user_id == self.admin.id:
            raise BadRequest("Cannot delete your own account")
        user = self._get(user_id)

        owns_files = self.db.query(FileMeta.id).filter(FileMeta.user_id == user.id).first() is not None
        owns_folders = self.db.query(Folder.id).filter(Folder.user_id == user.id).first() is not None
        if owns_files or owns_folders:
            raise Conflict("User still owns files or folders. Deactivate the account instead.")

        self.db.delete(user)
        self.db.commit()
        logger.info(f"Admin {self.admin.id} deleted user {user_id}")

    def toggle_user_status(self, user_id: str) -> User:
        if user_id == self.admin.id:
            raise BadRequest("Cannot deactivate your own account")
        user = self._get(user_id)

        user.is_active = not user.is_active
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Admin {self.admin.id} {'activated' if user.is_active else 'deactivated'} user {user.id}")
        return user
