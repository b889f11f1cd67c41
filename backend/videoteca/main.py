"""
Nursing Procedure Video Library: FastAPI application

This is the entry point for the backend. create_app():
1. Reads settings once and builds every component from explicit values
   (database engine, storage gateway, token verifier)
2. Installs the transport stages (logging, security headers, CORS,
   rate limits, deadlines)
3. Registers the exception handlers that produce the response envelope
4. Registers route handlers under API_PREFIX

Run with:
    uvicorn videoteca.main:app --reload --port 9999
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from videoteca.auth import TokenVerifier
from videoteca.config import Settings, get_settings
from videoteca.database import create_engine, create_session_factory, init_db
from videoteca.errors import VideotecaError
from videoteca.middleware import install_stages
from videoteca.responses import envelope
from videoteca.routers import videos
from videoteca.services.storage import StorageConfig, create_storage_gateway

# Import models so SQLAlchemy registers them with Base.metadata
# before init_db() calls create_all().
import videoteca.models  # noqa: F401

logger = logging.getLogger(__name__)

SERVICE_NAME = "Nursing Procedure Video Library"
VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting %s API (%s)", SERVICE_NAME, app.state.settings.APP_ENV)
    await init_db(app.state.engine)
    logger.info("Database tables created/verified")

    yield

    logger.info("Shutting down")
    await app.state.engine.dispose()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(VideotecaError)
    async def handle_videoteca_error(request: Request, exc: VideotecaError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return envelope(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return envelope(422, f"Validation failed: {problems}")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return envelope(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return envelope(500, "Internal server error")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Nursing Procedure Video Library API",
        description="Upload, catalog and stream nursing procedure videos",
        version=VERSION,
        lifespan=lifespan,
    )

    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.token_verifier = TokenVerifier(settings.SECRET_KEY, settings.JWT_ALGORITHM)
    app.state.storage = create_storage_gateway(
        StorageConfig(
            bucket=settings.AWS_S3_BUCKET,
            region=settings.AWS_REGION,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            endpoint_url=settings.AWS_S3_ENDPOINT_URL,
        ),
        mock_mode=settings.STORAGE_MOCK_MODE,
    )

    install_stages(app, settings)
    register_exception_handlers(app)
    app.include_router(videos.router, prefix=settings.API_PREFIX)

    @app.get("/", tags=["health"])
    async def root():
        """Root endpoint: confirms the API is alive."""
        return {
            "service": SERVICE_NAME,
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Detailed health check: verifies database connectivity."""
        try:
            async with request.app.state.session_factory() as session:
                await session.execute(text("SELECT 1"))
            db_status = "connected"
        except Exception as e:
            db_status = f"error: {str(e)}"

        return {
            "status": "healthy" if db_status == "connected" else "degraded",
            "database": db_status,
            "environment": settings.APP_ENV,
        }

    return app


app = create_app()
