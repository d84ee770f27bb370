from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str = "sqlite+aiosqlite:///./todox.db"
    SQL_ECHO: bool = False
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30
    ENVIRONMENT: str = "development"

    # S3-compatible object storage (MinIO locally, S3 in production)
    MINIO_ENDPOINT: Optional[str] = None
    MINIO_REGION: Optional[str] = None
    MINIO_ACCESS_KEY: Optional[str] = None
    MINIO_SECRET_KEY: Optional[str] = None
    MINIO_BUCKET: Optional[str] = None
    MINIO_MAX_PRESIGN_SECONDS: int = 7 * 24 * 60 * 60

    UPLOADS_DIR: str = "uploads"
    USE_IN_MEMORY_STORAGE: bool = False

    CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api"
    API_PORT: int = 8000

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            return "postgresql+asyncpg://" + url[len("postgres://"):]
        if url.startswith("postgresql://"):
            return "postgresql+asyncpg://" + url[len("postgresql://"):]
        return url

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
