# This file makes chatline/api/common a Python package

from .base_router import BaseRouter
from .decorators import handle_route_errors, log_route_call
from .exceptions import (
    APIException,
    BadRequestError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    ServiceUnavailableError,
    handle_service_error,
)

__all__ = [
    "log_route_call",
    "handle_route_errors",
    "APIException",
    "NotFoundError",
    "BadRequestError",
    "ForbiddenError",
    "InternalServerError",
    "ServiceUnavailableError",
    "handle_service_error",
    "BaseRouter",
]
