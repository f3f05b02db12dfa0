import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.exceptions import AppError, ErrorKind

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_CONTENT: 400,
    ErrorKind.UPSTREAM_FAILURE: 502,
    ErrorKind.CONTENT_POLICY: 502,
    ErrorKind.STORAGE_FAILURE: 503,
    ErrorKind.INVALID_INPUT: 400,
}


def status_for(kind: ErrorKind) -> int:
    return STATUS_BY_KIND.get(kind, 500)


def _error_body(request: Request, detail: str, kind: str | None) -> dict:
    return {
        "detail": detail,
        "kind": kind,
        "request_id": getattr(request.state, "request_id", None),
    }


async def app_error_handler(request: Request, exc: AppError):
    status_code = status_for(exc.kind)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_error",
        extra={"kind": exc.kind.value, "status": status_code, "error": str(exc)},
    )
    # Insufficient-content messages carry the review counts; provider errors stay generic.
    detail = str(exc) if status_code < 500 else exc.detail
    return JSONResponse(status_code=status_code, content=_error_body(request, detail, exc.kind.value))


async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=400,
        content=_error_body(request, str(exc), ErrorKind.INVALID_INPUT.value),
    )


async def runtime_error_handler(request: Request, exc: RuntimeError):
    logger.error("runtime_error", extra={"error": str(exc)})
    return JSONResponse(
        status_code=502,
        content=_error_body(request, str(exc), ErrorKind.UPSTREAM_FAILURE.value),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(RuntimeError, runtime_error_handler)
