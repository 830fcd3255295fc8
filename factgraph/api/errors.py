"""Maps application errors to HTTP responses with an RFC 7807 body."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from factgraph.core.exceptions import (
    AppError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from factgraph.utils.logging import get_logger
from factgraph.utils.responses import create_error_detail

LOGGER = get_logger(__name__)

# Most specific first; the first isinstance match wins.
ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Invalid Request"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (ConflictError, status.HTTP_409_CONFLICT, "Conflict"),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY, "Upstream Failure"),
)


def status_for(exc: AppError) -> tuple[int, str]:
    for error_type, code, title in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code, title
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    code, title = status_for(exc)
    if code >= 500:
        LOGGER.error(
            f"{title}: {exc.message}",
            exc_info=exc.original_error or exc,
            extra={"path": request.url.path},
        )
    else:
        LOGGER.warning(f"{title}: {exc.message}", extra={"path": request.url.path})

    detail = create_error_detail(title=title, status=code, detail=exc.message, request=request)
    return JSONResponse(status_code=code, content=detail.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
