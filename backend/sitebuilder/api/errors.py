"""Translation of domain errors into HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sitebuilder.errors import (
    ComposeUnavailable,
    ContentTooLarge,
    Forbidden,
    InvalidDestination,
    MarkupInvalid,
    NestedDocumentInFragment,
    NotFound,
    PersistenceFailed,
    RateLimited,
    RevisionAllocationFailed,
    SiteBuilderError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[SiteBuilderError], int] = {
    InvalidDestination: 400,
    ContentTooLarge: 413,
    MarkupInvalid: 422,
    NestedDocumentInFragment: 422,
    RateLimited: 429,
    RevisionAllocationFailed: 503,
    PersistenceFailed: 503,
    ComposeUnavailable: 503,
    NotFound: 404,
    Forbidden: 403,
}


def status_for(error: SiteBuilderError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return 500


async def site_builder_error_handler(request: Request, exc: SiteBuilderError) -> JSONResponse:
    status_code = status_for(exc)
    body: dict = {"error": exc.reason, "code": exc.code}
    headers: dict[str, str] = {}

    if isinstance(exc, MarkupInvalid) and exc.errors:
        body["details"] = exc.errors
    if isinstance(exc, RateLimited):
        body["reset_at"] = exc.reset_epoch_millis
        headers["Retry-After"] = str(exc.retry_after_seconds)

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.reason}")
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SiteBuilderError, site_builder_error_handler)
