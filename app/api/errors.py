import logging
from fastapi import HTTPException, status as http_status

from app.logic.exceptions import (
    BaseCustomError,
    NotFoundError,
    AlreadyExistsError,
    AlreadyDecidedError,
    InvalidStepError,
    ForbiddenStepError,
    PersistenceError,
    ValidationError,
    AuthenticationError,
    AuthorizationError
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (NotFoundError, http_status.HTTP_404_NOT_FOUND),
    (AlreadyDecidedError, http_status.HTTP_409_CONFLICT),
    (ForbiddenStepError, http_status.HTTP_403_FORBIDDEN),
    (AuthorizationError, http_status.HTTP_403_FORBIDDEN),
    (AuthenticationError, http_status.HTTP_401_UNAUTHORIZED),
    (ValidationError, http_status.HTTP_400_BAD_REQUEST),
    (AlreadyExistsError, http_status.HTTP_400_BAD_REQUEST),
    (InvalidStepError, http_status.HTTP_500_INTERNAL_SERVER_ERROR),
    (PersistenceError, http_status.HTTP_503_SERVICE_UNAVAILABLE),
)

def to_http_exception(error: BaseCustomError) -> HTTPException:
    """Structured failure body for a service error"""
    status_code = next(
        (code for error_type, code in STATUS_CODES if isinstance(error, error_type)),
        http_status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code >= 500:
        logger.error(f"{error.error_code}: {error.message}")
    return HTTPException(status_code=status_code, detail=error.to_detail())
