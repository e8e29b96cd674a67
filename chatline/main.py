import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from chatline.api.routes import conversations, messages, realtime, users
from chatline.auth_config import auth_backend, bearer_backend, fastapi_users
from chatline.core.config import settings
from chatline.db import check_database_health
from chatline.schemas.user import UserCreate, UserRead, UserUpdate
from chatline.services.migration_service import run_migrations

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application...")
    try:
        if settings.RUN_MIGRATIONS_ON_STARTUP:
            await run_migrations()
        await check_database_health()
        logger.info("Database health check passed - application ready")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        logger.error("Application startup aborted due to database issues")
        raise

    yield

    logger.info("Application shutting down...")


app = FastAPI(title="chatline", lifespan=lifespan)


app.include_router(
    fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"]
)
app.include_router(
    fastapi_users.get_auth_router(bearer_backend), prefix="/auth/bearer", tags=["auth"]
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(users.users_router_instance)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)
app.include_router(conversations.conversations_router_instance)
app.include_router(messages.messages_router_instance)
app.include_router(realtime.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
