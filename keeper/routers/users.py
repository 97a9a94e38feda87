from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from keeper.models.user import User
from keeper.routers.deps import get_current_user, get_db
from keeper.schemas.common import envelope
from keeper.schemas.user import UserCreate, UserOut, UserUpdate
from keeper.services.users import UserAdminService

router = APIRouter(prefix="/api/users", tags=["users"])


def get_user_admin(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> UserAdminService:
    # raises Forbidden for non-admins
    return UserAdminService(db, user)


@router.get("")
def list_users(service: UserAdminService = Depends(get_user_admin)):
    users = service.list_users()
    return envelope("Users retrieved successfully", {"users": [UserOut.model_validate(u).dump() for u in users]})


@router.post("")
def create_user(payload: UserCreate, service: UserAdminService = Depends(get_user_admin)):
    user = service.create_user(
        email=payload.email,
        username=payload.username,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
    )
    return JSONResponse(
        status_code=201,
        content=envelope("User created successfully", {"user": UserOut.model_validate(user).dump()}),
    )


@router.get("/{user_id}")
def get_user(user_id: str, service: UserAdminService = Depends(get_user_admin)):
    user = service.get_user(user_id)
    return envelope("User retrieved successfully", {"user": UserOut.model_validate(user).dump()})


@router.put("/{user_id}")
def update_user(user_id: str, payload: UserUpdate, service: UserAdminService = Depends(get_user_admin)):
    user = service.update_user(user_id, **payload.model_dump(exclude_unset=True))
    return envelope("User updated successfully", {"user": UserOut.model_validate(user).dump()})


@router.delete("/{user_id}")
def delete_user(user_id: str, service: UserAdminService = Depends(get_user_admin)):
    service.delete_user(user_id)
    return envelope("User deleted successfully")


@router.patch("/{user_id}/toggle-status")
def toggle_user_status(user_id: str, service: UserAdminService = Depends(get_user_admin)):
    user = service.toggle_user_status(user_id)
    state = "activated" if user.is_active else "deactivated"
    return envelope(f"User {state} successfully", {"user": UserOut.model_validate(user).dump()})
