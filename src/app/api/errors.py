"""Map the integration error hierarchy onto HTTP responses.

The handler is registered for IntegrationError in create_app(), so routes
let domain errors propagate. The body is ``{"detail": error.to_dict()}``.
"""

from __future__ import annotations

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse

from src.app.integrations.errors import (
    AmbiguousSiteError,
    ConfigValidationError,
    CredentialsUnreadableError,
    IntegrationError,
    IntegrationInactiveError,
    IntegrationNotFoundError,
    ItemCreateOutcomeUnknownError,
    NotPublishedError,
    PlatformAPIError,
    PostNotFoundError,
    PublishInProgressError,
    SchemaMismatchError,
    UnknownProviderError,
)

logger = structlog.get_logger(__name__)

# First matching class wins; order subclasses before their bases
STATUS_BY_ERROR: tuple[tuple[type[IntegrationError], int], ...] = (
    (ConfigValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SchemaMismatchError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AmbiguousSiteError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UnknownProviderError, status.HTTP_400_BAD_REQUEST),
    (IntegrationNotFoundError, status.HTTP_404_NOT_FOUND),
    (PostNotFoundError, status.HTTP_404_NOT_FOUND),
    (NotPublishedError, status.HTTP_404_NOT_FOUND),
    (IntegrationInactiveError, status.HTTP_409_CONFLICT),
    (PublishInProgressError, status.HTTP_409_CONFLICT),
    (CredentialsUnreadableError, status.HTTP_409_CONFLICT),
    (ItemCreateOutcomeUnknownError, status.HTTP_504_GATEWAY_TIMEOUT),
    (PlatformAPIError, status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: IntegrationError) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_502_BAD_GATEWAY


async def integration_error_handler(request: Request, exc: IntegrationError) -> JSONResponse:
    code = status_for(exc)
    logger.warning(
        "api.integration_error",
        path=request.url.path,
        status_code=code,
        error_code=exc.error_code,
        error=exc.message,
    )
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()})
