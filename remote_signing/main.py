"""Main FastAPI application for the remote signing service."""

from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .api.dependencies import get_session_store
from .api.models import ErrorResponse, HealthStatus
from .api.router import multi_document_router, single_document_router
from .core.config import RemoteSigningSettings, get_settings
from .core.exceptions import SigningError
from .core.logging import configure_logging, get_logger
from .core.middleware import RequestLoggingMiddleware, get_request_id
from .services.session_store import SessionStore

logger = get_logger(__name__)


def create_app(settings: RemoteSigningSettings | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json_output)

    app = FastAPI(
        title="Remote Signing",
        description="Two-phase signing with an external signing agent holding the private key",
        version="0.1.0",
        docs_url="/docs",
        openapi_url="/openapi.json",
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ========================================================================
    # Exception Handlers
    # ========================================================================

    @app.exception_handler(SigningError)
    async def signing_error_handler(request: Request, exc: SigningError):
        """Render domain errors with their own status code."""
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        logger.warning(
            "signing.request_failed",
            error=exc.error_code,
            message=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                **exc.to_dict(),
                timestamp=datetime.now(timezone.utc),
                request_id=request_id,
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        logger.error(
            "request.unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_server_error",
                message="An unexpected error occurred",
                timestamp=datetime.now(timezone.utc),
                request_id=request_id,
            ).model_dump(mode="json"),
        )

    # ========================================================================
    # Routes
    # ========================================================================

    app.include_router(single_document_router)
    app.include_router(multi_document_router)

    @app.get("/", tags=["info"])
    async def root():
        """Service root endpoint."""
        return {
            "service": "Remote Signing",
            "version": "0.1.0",
            "docs_url": "/docs",
            "health_url": "/health",
            "routes": ["/sign-a-digest", "/sign-multiple-documents"],
        }

    @app.get("/health", response_model=HealthStatus, tags=["health"])
    def health(
        cfg: RemoteSigningSettings = Depends(get_settings),
        store: SessionStore = Depends(get_session_store),
    ) -> HealthStatus:
        """Health check endpoint with engine mode indicator."""
        return HealthStatus(
            status="healthy",
            engine="mock" if cfg.mock_engine else "dss",
            active_sessions=len(store),
            timestamp=datetime.now(timezone.utc),
        )

    logger.info(
        "app.startup",
        environment=settings.environment,
        engine="mock" if settings.mock_engine else "dss",
        nexu_url=settings.nexu_url,
    )
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "remote_signing.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
