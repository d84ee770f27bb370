import logging
import secrets
from datetime import timedelta
from pathlib import PurePath

from fastapi.concurrency import run_in_threadpool
from jose import JWTError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.config import Settings
from todox.core.database import utcnow
from todox.core.exceptions import AuthenticationError, ValidationError
from todox.core.security import create_access_token, decode_access_token, get_password_hash, verify_password
from todox.core.storage import BlobStorage, StorageKey, StoragePurpose
from todox.models.user import User
from todox.schemas.auth import UserRegister

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def issue_token(user: User, settings: Settings) -> str:
    return create_access_token(
        data={"sub": str(user.id)},
        secret_key=settings.SECRET_KEY,
        expires_delta=timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS),
    )


async def register(db: AsyncSession, user_in: UserRegister, settings: Settings) -> tuple[User, str]:
    result = await db.execute(
        select(User).where(or_(User.email == user_in.email, User.username == user_in.username))
    )
    if result.scalars().first():
        raise ValidationError("A user with this email or username already exists")

    user = User(
        username=user_in.username,
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user, issue_token(user, settings)


async def authenticate(db: AsyncSession, email: str, password: str, settings: Settings) -> tuple[User, str]:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    # Same error for unknown email and wrong password so accounts can't be enumerated
    if not user or not verify_password(password, user.hashed_password):
        raise AuthenticationError(INVALID_CREDENTIALS)
    return user, issue_token(user, settings)


async def user_from_token(db: AsyncSession, token: str, settings: Settings) -> User:
    try:
        payload = decode_access_token(token, settings.SECRET_KEY)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise AuthenticationError("Could not validate credentials")

    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationError("Could not validate credentials")
    return user


async def update_avatar(
    db: AsyncSession, storage: BlobStorage, user: User, filename: str, data: bytes, content_type: str
) -> User:
    extension = PurePath(filename or "").suffix.lstrip(".").lower()
    if not extension:
        raise ValidationError("Avatar file must have an extension")

    unique_name = f"{int(utcnow().timestamp() * 1000)}_{secrets.token_hex(5)}.{extension}"
    key = StorageKey(StoragePurpose.avatars, user.id, unique_name)
    user.avatar = await run_in_threadpool(storage.store, key, data, content_type)
    await db.commit()
    await db.refresh(user)
    return user
