import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import make_url

from chatline.core.config import settings

logger = logging.getLogger(__name__)

# alembic.ini lives at the project root, next to the chatline package
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return
    database = url.database
    if not database or database == ":memory:":
        return
    db_dir = Path(database).parent
    if not db_dir.exists():
        logger.info(f"Creating database directory: {db_dir}")
        db_dir.mkdir(parents=True, exist_ok=True)


def _upgrade_to_head() -> None:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    command.upgrade(config, "head")


async def run_migrations():
    """Run database migrations using alembic programmatically."""
    try:
        logger.info("Running database migrations...")
        _ensure_sqlite_directory(settings.DATABASE_URL)
        # env.py drives its own event loop, so alembic runs off the main one
        await asyncio.to_thread(_upgrade_to_head)
        logger.info("Migrations completed successfully")
    except Exception as e:
        logger.error(f"Database migration failed: {e}", exc_info=True)
        raise RuntimeError("Database migration failed") from e
