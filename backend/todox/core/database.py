from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import Settings

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_engine(settings: Settings) -> AsyncEngine:
    url = settings.ASYNC_DATABASE_URL
    connect_args = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args = {"server_settings": {"application_name": "todox"}}
    return create_async_engine(url, echo=settings.SQL_ECHO, connect_args=connect_args)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    # Import for side effects so every table is registered on Base.metadata
    from todox.models import category, task, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request):
    async with request.app.state.sessionmaker() as session:
        yield session
