"""FastAPI application for the knowledge-base upload engine"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import time

from shared.config.settings import settings
from .upload_controller import router as upload_router
from ...application.services.dependency_injection import get_container, configure_services
from ...application.services.service_configuration import UploadServiceConfiguration
from ...domain.exceptions import UploadEngineError


logging.basicConfig(level=getattr(logging, settings.log_level))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events with proper cleanup"""
    logger.info(f"{settings.service_name} v{settings.service_version} starting up...")

    container = configure_services(UploadServiceConfiguration(settings))
    app.state.container = container
    logger.info("Dependency injection container configured")

    try:
        yield
    finally:
        logger.info(f"{settings.service_name} shutting down...")
        await container.cleanup()
        logger.info("Dependency injection container cleaned up")


def create_application() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title="Knowledge Base Upload API",
        description="Chunked document upload with processing progress tracking",
        version=settings.service_version,
        lifespan=lifespan
    )

    setup_middleware(app)
    app.include_router(upload_router)
    setup_exception_handlers(app)

    return app


def setup_middleware(app: FastAPI):
    """Setup application middleware"""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response


def setup_exception_handlers(app: FastAPI):
    """Setup custom exception handlers"""

    @app.exception_handler(UploadEngineError)
    async def upload_error_handler(request: Request, exc: UploadEngineError):
        logger.warning(f"Upload error in {request.url}: {exc}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Upload error",
                "message": exc.user_message,
                "type": type(exc).__name__
            }
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.warning(f"Value error in {request.url}: {exc}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request",
                "message": str(exc),
                "type": "value_error"
            }
        )


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "knowledge_upload.presentation.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
