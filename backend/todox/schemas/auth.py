from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from .task import CamelModel


class UserRegister(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)


class UserLogin(CamelModel):
    # Normalised the same way as on registration
    email: EmailStr
    password: str


class UserSummary(CamelModel):
    id: int
    username: str
    email: str


class UserProfile(UserSummary):
    avatar: Optional[str] = None
    created_at: datetime


class UserWithAvatar(UserSummary):
    avatar: Optional[str] = None


class TokenResponse(CamelModel):
    message: str
    token: str
    user: UserSummary


class ProfileResponse(CamelModel):
    user: UserProfile


class AvatarResponse(CamelModel):
    message: str
    user: UserWithAvatar
