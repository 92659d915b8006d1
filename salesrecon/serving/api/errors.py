"""
API Error Handlers

Domain errors leave the API as JSON carrying the operator notice.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from salesrecon.errors import IncompleteMappingError, ReconciliationError

logger = structlog.get_logger(__name__)


async def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
    content = {
        "error": type(exc).__name__,
        "detail": exc.message,
        "notice": exc.notice.model_dump(),
    }
    if isinstance(exc, IncompleteMappingError):
        content["missing"] = exc.missing_keys

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReconciliationError, reconciliation_error_handler)
