import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from app.auth import default_strategy
from app.config import Settings
from app.database import create_engine, create_session_maker, create_tables, wait_for_database
from app.routers import admin, auth, authors, books, loans, reviews, spa, users
from app.services.accounts import ensure_admin
from app.services.assets import AssetError, AssetUploadError, build_storage

logger = logging.getLogger(__name__)

API_ROUTERS = [
    auth.router,
    books.router,
    authors.router,
    loans.router,
    reviews.router,
    users.router,
    admin.router,
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    engine = create_engine(settings)
    await wait_for_database(engine, settings.db_connect_retries, settings.db_connect_delay)
    if settings.db_create_tables:
        await create_tables(engine)

    app.state.engine = engine
    app.state.session_maker = create_session_maker(engine)

    if settings.admin_username and settings.admin_password:
        await ensure_admin(
            app.state.session_maker,
            settings.admin_username,
            settings.admin_password,
            settings.bcrypt_rounds,
        )

    if settings.asset_backend == "local":
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    app.state.assets = build_storage(settings)

    try:
        yield
    finally:
        await app.state.assets.close()
        await engine.dispose()


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


async def asset_exception_handler(request: Request, exc: AssetError):
    if isinstance(exc, AssetUploadError):
        logger.error("Image upload failed on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Image upload failed"},
        )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Builds the application. Every API route is served both at the root and under /api.
    """
    settings = settings or Settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Library API", lifespan=lifespan)
    app.state.settings = settings
    app.state.auth_strategy = default_strategy(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AssetError, asset_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)

    for router in API_ROUTERS:
        app.include_router(router)
        app.include_router(router, prefix="/api", include_in_schema=False)

    uploads = StaticFiles(directory=settings.upload_dir, check_dir=False)
    app.mount("/uploads", uploads, name="uploads")
    app.mount("/api/uploads", uploads, name="api-uploads")

    # Must stay last: catches every path not matched above
    app.include_router(spa.router)

    return app


app = create_app()
