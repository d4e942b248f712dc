import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from storefront.storage.errors import (
    BackendUnavailable, ConstraintViolation, InvalidStatusTransition, MappingError,
    StorageError, StorageTimeout,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
STATUS_BY_ERROR = (
    (ConstraintViolation, status.HTTP_409_CONFLICT),
    (InvalidStatusTransition, status.HTTP_409_CONFLICT),
    (StorageTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (BackendUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (MappingError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def register_error_handlers(app: FastAPI):
    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        code = next((c for cls, c in STATUS_BY_ERROR if isinstance(exc, cls)), status.HTTP_500_INTERNAL_SERVER_ERROR)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
        return JSONResponse(status_code=code, content={"detail": str(exc)})
