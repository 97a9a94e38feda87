from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from keeper.models.user import User
from keeper.routers.deps import get_current_user, get_db
from keeper.schemas.common import envelope
from keeper.schemas.user import LoginRequest, ProfileUpdate, RegisterRequest, UsageStats, UserOut
from keeper.services.auth import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register")
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user, token = AuthService(db).register(
        email=payload.email,
        username=payload.username,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return JSONResponse(
        status_code=201,
        content=envelope("User registered successfully", {"user": UserOut.model_validate(user).dump(), "token": token}),
    )


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user, token = AuthService(db).login(payload.email, payload.password)
    return envelope("Login successful", {"user": UserOut.model_validate(user).dump(), "token": token})


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    stats = AuthService(db).usage_stats(user)
    return envelope(
        "Profile retrieved successfully",
        {"user": UserOut.model_validate(user).dump(), "stats": UsageStats(**stats).dump()},
    )


@router.put("/profile")
def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user = AuthService(db).update_profile(user, **payload.model_dump(exclude_unset=True))
    return envelope("Profile updated successfully", {"user": UserOut.model_validate(user).dump()})


@router.post("/logout")
def logout(user: User = Depends(get_current_user)):
    # tokens are stateless; the client discards its copy
    return envelope("Logout successful")
