from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.config import Settings
from todox.core.database import get_db
from todox.core.storage import BlobStorage
from todox.dependencies import MB, get_app_settings, get_storage, read_upload
from todox.models.user import User
from todox.schemas.auth import (
    AvatarResponse,
    ProfileResponse,
    TokenResponse,
    UserLogin,
    UserProfile,
    UserRegister,
    UserSummary,
    UserWithAvatar,
)
from todox.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])

AVATAR_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
AVATAR_MAX_BYTES = 5 * MB

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> User:
    return await auth_service.user_from_token(db, token, settings)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_in: UserRegister,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, token = await auth_service.register(db, user_in, settings)
    return TokenResponse(message="Registration successful", token=token, user=UserSummary.model_validate(user))


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, token = await auth_service.authenticate(db, credentials.email, credentials.password, settings)
    return TokenResponse(message="Login successful", token=token, user=UserSummary.model_validate(user))


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get current user profile information"""
    return ProfileResponse(user=UserProfile.model_validate(current_user))


@router.post("/avatar", response_model=AvatarResponse)
async def upload_avatar(
    avatar: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    data = await read_upload(
        avatar, AVATAR_TYPES, AVATAR_MAX_BYTES, "Only image files are allowed (JPEG, PNG, GIF, WebP)"
    )
    user = await auth_service.update_avatar(db, storage, current_user, avatar.filename, data, avatar.content_type)
    return AvatarResponse(message="Avatar updated successfully", user=UserWithAvatar.model_validate(user))
