from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from storefront.core.logging import internal_error
from storefront.services.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
    ServiceError,
)

# Most specific first; the first matching class wins.
STATUS_BY_ERROR: tuple[tuple[type[ServiceError], int], ...] = (
    (ResourceNotFoundError, status.HTTP_404_NOT_FOUND),
    (DomainValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ServiceError, status.HTTP_400_BAD_REQUEST),
)


def status_for(exc: ServiceError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        if isinstance(exc, InvalidStateTransitionError):
            # bug or lost race, not bad input
            internal_error(exc.detail, code=exc.code, path=request.url.path, context=exc.to_dict().get("context"))
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())
