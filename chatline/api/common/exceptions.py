import logging

from fastapi import HTTPException, status

from chatline.services.exceptions import (
    BusinessRuleError,
    ConflictError,
    ConversationNotFoundError,
    DatabaseError,
    InvalidInputError,
    MessageNotFoundError,
    NotAuthorizedError,
    ServiceError,
    StoreUnavailableError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)


class APIException(HTTPException):
    """Base class for API specific exceptions."""

    def __init__(
        self, status_code: int, detail: any = None, headers: dict | None = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(APIException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(APIException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ForbiddenError(APIException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InternalServerError(APIException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
        )


class ServiceUnavailableError(APIException):
    def __init__(self, detail: str = "Service unavailable"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def handle_service_error(e: ServiceError):
    """
    Maps ServiceError subclasses to the matching APIException.
    Called by the @handle_route_errors decorator; always raises.
    """
    logger.warning(
        f"Handling service error: {e.__class__.__name__} - {getattr(e, 'message', str(e))}"
    )
    message = getattr(e, "message", str(e))

    if isinstance(
        e,
        (
            ConversationNotFoundError,
            MessageNotFoundError,
                    UserNotFoundError,
        ),
    ):
        raise NotFoundError(detail=message)
    elif isinstance(e, NotAuthorizedError):
        raise ForbiddenError(detail=message)
    elif isinstance(e, (InvalidInputError, BusinessRuleError)):
        raise BadRequestError(detail=message)
    elif isinstance(e, ConflictError):
        raise APIException(status_code=status.HTTP_409_CONFLICT, detail=message)
    elif isinstance(e, StoreUnavailableError):
        raise ServiceUnavailableError(detail=message)
    elif isinstance(e, DatabaseError):
        logger.error(f"Database error: {e}", exc_info=True)
        raise InternalServerError(detail="A database error occurred.")
    else:
        status_code = getattr(e, "status_code", status.HTTP_500_INTERNAL_SERVER_ERROR)
        raise APIException(
            status_code=status_code,
            detail=getattr(e, "message", "A service error occurred."),
        )
