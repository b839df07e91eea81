"""
FastAPI Application
==================

Main FastAPI application serving components rendered to PNG images.
"""

from contextlib import asynccontextmanager
import uuid
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from src.config.settings import get_settings
from src.config.logging import get_logger
from src.core.assets.emoji import close_emoji_loader
from src.core.assets.fonts import BaseFontError, ensure_base_font
from src.core.assets.google_fonts import close_google_fonts_client, get_google_fonts_client
from src.core.assets.resolver import EmojiResolutionError
from src.core.rendering.pipeline import InvalidRenderOptionsError, RenderError
from src.core.rendering.rasterizer import RasterizationError
from src.api.routes.health import router as health_router
from src.api.routes.og import router as og_router
from src.models.schemas import ErrorResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("Starting FastAPI application", environment=settings.environment)

    if settings.fetch_base_font_on_startup:
        try:
            await ensure_base_font(get_google_fonts_client(), settings)
        except Exception as e:
            logger.error("Failed to provide base font", error=str(e))
            # Renders with caller-supplied fonts still work
            logger.warning("Continuing without base font")

    try:
        yield
    finally:
        # Shutdown
        logger.info("Shutting down FastAPI application")

        try:
            await close_google_fonts_client()
            await close_emoji_loader()
            logger.info("HTTP clients closed")
        except Exception as e:
            logger.error("Error closing HTTP clients", error=str(e))


# Create FastAPI app
settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    description="Render UI components to PNG images for social previews",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_hosts,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(og_router)
app.include_router(health_router)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> JSONResponse:  # type: ignore
    """Add request ID to all requests."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)  # type: ignore
    response.headers["X-Request-ID"] = request_id  # type: ignore

    return response  # type: ignore


# Exception handlers
@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom HTTP exception handler with structured error response."""
    error_response = ErrorResponse(
        error=str(exc.detail),
        error_code=str(exc.status_code),
        details=None,
        request_id=getattr(request.state, "request_id", None),
    )

    logger.error(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=error_response.request_id,
    )

    return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(mode="json"))


@app.exception_handler(InvalidRenderOptionsError)
async def invalid_options_exception_handler(
    request: Request, exc: InvalidRenderOptionsError
) -> JSONResponse:
    """Reject invalid render options before anything is rendered."""
    error_response = ErrorResponse(
        error="Invalid render options",
        error_code="INVALID_RENDER_OPTIONS",
        details={"message": str(exc)},
        request_id=getattr(request.state, "request_id", None),
    )

    logger.warning(
        "Invalid render options", error=str(exc), request_id=error_response.request_id
    )

    return JSONResponse(status_code=400, content=error_response.model_dump(mode="json"))


@app.exception_handler(RenderError)
async def render_exception_handler(request: Request, exc: RenderError) -> JSONResponse:
    """Handle render errors with specific error codes."""
    cause = exc.__cause__

    # Determine specific error code based on the failing step
    if isinstance(cause, EmojiResolutionError):
        error_code = "EMOJI_RESOLUTION_ERROR"
        user_message = "An emoji in the image could not be loaded."
    elif isinstance(cause, BaseFontError):
        error_code = "BASE_FONT_UNAVAILABLE"
        user_message = "The base font is not available."
    elif isinstance(cause, RasterizationError):
        error_code = "RASTERIZATION_ERROR"
        user_message = "The image could not be rasterized."
    else:
        error_code = "RENDER_ERROR"
        user_message = "Image rendering failed due to an internal error."

    error_response = ErrorResponse(
        error=user_message,
        error_code=error_code,
        details={"message": str(exc)} if settings.debug else None,
        request_id=getattr(request.state, "request_id", None),
    )

    logger.error(
        "Render error",
        error_code=error_code,
        error_message=str(exc),
        request_id=error_response.request_id,
    )

    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """General exception handler for unexpected errors."""
    error_response = ErrorResponse(
        error="Internal server error",
        error_code="INTERNAL_ERROR",
        details={"exception": str(exc)} if settings.debug else None,
        request_id=getattr(request.state, "request_id", None),
    )

    logger.error(
        "Unhandled exception",
        exception=str(exc),
        request_id=error_response.request_id,
        exc_info=True,
    )

    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))


def main() -> None:
    """Run the API server."""
    uvicorn.run(
        "src.api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug and settings.environment == "development",
    )


if __name__ == "__main__":
    main()
