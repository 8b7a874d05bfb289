from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from gatehouse.logging import get_logger
from gatehouse.services.errors import ServerError, ServiceError

logger = get_logger(__name__)


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain and storage errors onto the public error shape.

    Only the public message leaves the process; ``reason`` and ``detail``
    are logged.
    """

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            error_type=type(exc).__name__,
            reason=exc.reason,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.message, exc.error_code)

    @app.exception_handler(SQLAlchemyError)
    async def handle_storage_error(request: Request, exc: SQLAlchemyError):
        logger.error(
            "storage_error",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return _error_response(ServerError.status_code, ServerError.default_message, ServerError.error_code)
