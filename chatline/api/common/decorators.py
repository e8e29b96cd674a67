import logging
from functools import wraps

from fastapi import HTTPException, status

from chatline.api.common.exceptions import handle_service_error
from chatline.services.exceptions import ServiceError

logger = logging.getLogger(__name__)


def log_route_call(func):
    """
    A decorator to log the entry and exit of a route function.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        route_logger = logging.getLogger(func.__module__)

        # Only argument names: bodies and users are not worth leaking into logs
        route_logger.info(
            f"Entering route: {func.__name__} (kwargs: {sorted(kwargs)})"
        )
        try:
            result = await func(*args, **kwargs)
            route_logger.info(f"Successfully exited route: {func.__name__}")
            return result
        except Exception as e:
            route_logger.error(
                f"Error during route: {func.__name__}. Exception: {type(e).__name__} - {e}",
                exc_info=False,
            )
            raise

    return wrapper


def handle_route_errors(func):
    """
    A decorator to standardize error handling in API routes.
    Service errors are translated by handle_service_error; anything else
    unexpected becomes a 500.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except ServiceError as e:
            logger.error(f"Service error in {func.__name__} route: {e}", exc_info=False)
            handle_service_error(e)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error in {func.__name__} route: {e}", exc_info=True
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An unexpected server error occurred.",
            )

    return wrapper
