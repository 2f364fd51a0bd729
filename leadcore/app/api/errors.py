"""
MarketPro Lead Core API Error Mapping
"""

from fastapi import HTTPException, status
import structlog

from ..core.errors import (
    AlreadyConvertedError,
    DuplicateError,
    InfrastructureError,
    LeadEngineError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)

logger = structlog.get_logger()

STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DuplicateError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyConvertedError, status.HTTP_409_CONFLICT),
    (StaleStateError, status.HTTP_409_CONFLICT),
)


def to_http_exception(error: Exception, operation: str) -> HTTPException:
    """Translate an engine error into the HTTP response the caller sees"""
    if isinstance(error, HTTPException):
        return error

    if isinstance(error, LeadEngineError):
        for error_cls, status_code in STATUS_BY_ERROR:
            if isinstance(error, error_cls):
                return HTTPException(status_code=status_code, detail=error.to_dict())
        logger.error(f"{operation} failed", error=str(error))
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.to_dict())

    if isinstance(error, InfrastructureError):
        logger.error(f"{operation} failed", error=str(error), kind=error.kind)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"kind": error.kind, "message": f"Failed to {operation}"},
        )

    logger.error(f"{operation} failed", error=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation}",
    )
