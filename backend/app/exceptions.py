"""Map sharing errors to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jobshare.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    JobShareError,
    NoResponsibleUserError,
    NotFoundError,
    ValidationError,
)

from .logging_config import get_logger

logger = get_logger("jobshare.api.errors")

STATUS_CODES = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    ExpiredError: 410,
    ForbiddenError: 403,
    NoResponsibleUserError: 422,
}


def status_code_for(exc: JobShareError) -> int:
    for error_class, status_code in STATUS_CODES.items():
        if isinstance(exc, error_class):
            return status_code
    return 400


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(JobShareError)
    async def job_share_exception_handler(request: Request, exc: JobShareError):
        status_code = status_code_for(exc)
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": exc.code},
        )
