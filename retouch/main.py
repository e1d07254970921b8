import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

# Load environment variables as early as possible
load_dotenv()

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from .core.config import settings
from .dependencies import Services, build_services
from .exceptions import RetouchError, http_exception_handler, retouch_exception_handler
from .infrastructure.tools.process import require_tools, which
from .middleware import (
    ErrorHandlingMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    RequestSizeLimitMiddleware,
    SecurityMiddleware,
)
from .routers import edit_router, export_router, images_router, metadata_router, operations_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def external_tools():
    return [settings.EXIFTOOL_PATH, settings.MAGICK_PATH]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    if getattr(app.state, "services", None) is None:
        if settings.REQUIRE_EXTERNAL_TOOLS:
            require_tools(external_tools())
        app.state.services = build_services(settings)
    logger.info(f"Session storage at {app.state.services.store.root}")
    yield
    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
    )
    app.state.services = services

    app.add_exception_handler(RetouchError, retouch_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=settings.GZIP_MIN_SIZE)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=settings.allowed_methods_list,
        allow_headers=settings.allowed_headers_list,
        expose_headers=["Content-Disposition", "X-Export-Warning", "X-Export-Quality", "X-Export-Failed", "X-Export-Report"],
    )

    app.include_router(images_router.router)
    app.include_router(metadata_router.router)
    app.include_router(edit_router.router)
    app.include_router(export_router.router)
    app.include_router(operations_router.router)

    @app.get("/health")
    def health_check():
        tools = {tool: which(tool) is not None for tool in external_tools()}
        return {
            "status": "healthy" if all(tools.values()) else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tools": tools,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "retouch.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,  # session state and artifact locks live in this process
        log_level=settings.LOG_LEVEL.lower()
    )
