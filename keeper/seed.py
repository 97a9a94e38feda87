# keeper/seed.py
"""Create the default accounts and folders. Safe to run more than once."""

import logging
import os

from keeper.core.logging import configure_logging
from keeper.core.security import hash_password
from keeper.models.database import SessionLocal, init_db
from keeper.models.folder import Folder
from keeper.models.user import Role, User
from keeper.services.folders import build_path

logger = logging.getLogger(__name__)


def get_or_create_user(db, email: str, username: str, password: str, role: Role, first_name: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        username=username,
        first_name=first_name,
        last_name="User",
        password=hash_password(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    logger.info(f"Created {role.value} account {email}")
    return user


def get_or_create_folder(db, user: User, name: str, description: str, parent: Folder = None) -> Folder:
    path = build_path(name, parent)
    folder = db.query(Folder).filter(Folder.user_id == user.id, Folder.path == path).first()
    if folder:
        return folder
    folder = Folder(name=name, path=path, description=description, parent_id=parent.id if parent else None, user_id=user.id)
    db.add(folder)
    db.commit()
    logger.info(f"Created folder {path} for {user.email}")
    return folder


def seed(db) -> None:
    get_or_create_user(
        db,
        "admin@bigdatakeeper.com",
        "admin",
        os.getenv("SEED_ADMIN_PASSWORD", "admin123"),
        Role.ADMIN,
        "Admin",
    )
    user = get_or_create_user(
        db,
        "user@bigdatakeeper.com",
        "testuser",
        os.getenv("SEED_USER_PASSWORD", "user123"),
        Role.USER,
        "Test",
    )
    root = get_or_create_folder(db, user, "Root", "Root folder for all files")
    get_or_create_folder(db, user, "Documents", "Document files", parent=root)
    get_or_create_folder(db, user, "Images", "Image files", parent=root)


def main() -> None:
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()
    logger.info("Database seed completed")


if __name__ == "__main__":
    main()
