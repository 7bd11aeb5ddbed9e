"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from library_audit.api.audit_logs import router as audit_logs_router
from library_audit.app_logging import configure_logging
from library_audit.containers import AppContainer
from library_audit.errors import AuditLogNotFoundError, InvalidPageRequestError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        try:
            app.state.container.close_resources()
        except Exception:
            logger.exception("Failed to close audit resources")

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(audit_logs_router)

    @app.exception_handler(AuditLogNotFoundError)
    async def handle_not_found(
        request: Request, exc: AuditLogNotFoundError
    ) -> JSONResponse:
        logger.warning("Audit log not found: %s", exc.message)
        return _error_response(
            request, status.HTTP_404_NOT_FOUND, exc.error_code, exc.message
        )

    @app.exception_handler(InvalidPageRequestError)
    async def handle_invalid_page(
        request: Request, exc: InvalidPageRequestError
    ) -> JSONResponse:
        logger.warning("Invalid audit log query: %s", exc.message)
        return _error_response(
            request, status.HTTP_400_BAD_REQUEST, exc.error_code, exc.message
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app


def _error_response(
    request: Request, status_code: int, code: str, message: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "status": status_code,
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "path": request.url.path,
        },
    )
