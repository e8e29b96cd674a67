import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import (
    ConflictError,
    DatabaseError,
    ServiceError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def atomic(session: AsyncSession, action: str):
    """Commits everything done in the block, or rolls all of it back.

    Database failures are translated into service errors after the rollback,
    so callers never see a half-applied multi-row write.
    """
    try:
        yield session
        await session.commit()
    except ServiceError:
        await session.rollback()
        raise
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Integrity error while trying to {action}: {e}")
        raise ConflictError(f"Could not {action} due to a data conflict.")
    except (OperationalError, InterfaceError) as e:
        await session.rollback()
        logger.error(f"Store unavailable while trying to {action}: {e}", exc_info=True)
        raise StoreUnavailableError(f"Could not {action}: the store is unavailable.")
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Database error while trying to {action}: {e}", exc_info=True)
        raise DatabaseError(f"Failed to {action} due to a database error.")
    except Exception as e:
        await session.rollback()
        logger.error(f"Unexpected error while trying to {action}: {e}", exc_info=True)
        raise ServiceError(f"An unexpected error occurred while trying to {action}.")
