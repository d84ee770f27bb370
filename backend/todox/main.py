import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from todox.core.config import Settings, get_settings
from todox.core.database import create_engine, create_sessionmaker, init_models
from todox.core.exceptions import register_exception_handlers
from todox.core.logging_config import setup_logging
from todox.core.storage import LOCAL_URL_PREFIX, BlobStorage, LocalBlobStorage, build_storage
from todox.routers import auth, categories, tasks

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, storage: Optional[BlobStorage] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Todox API")
    app.state.settings = settings
    app.state.storage = storage or build_storage(settings)
    app.state.engine = create_engine(settings)
    app.state.sessionmaker = create_sessionmaker(app.state.engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(tasks.router, prefix=settings.API_PREFIX)
    app.include_router(categories.router, prefix=settings.API_PREFIX)

    if isinstance(app.state.storage, LocalBlobStorage):
        app.mount(
            LOCAL_URL_PREFIX,
            StaticFiles(directory=app.state.storage.root, check_dir=False),
            name="uploads",
        )

    @app.on_event("startup")
    async def startup():
        await init_models(app.state.engine)
        logger.info("Todox API started (environment=%s)", settings.ENVIRONMENT)

    @app.on_event("shutdown")
    async def shutdown():
        await app.state.engine.dispose()

    @app.get("/")
    async def root():
        return {"message": "Todox API is running"}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("todox.main:create_app", factory=True, host="0.0.0.0", port=settings.API_PORT)
