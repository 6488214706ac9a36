import asyncio
import logging

from config.settings import settings
from core.db import create_engine, init_models
from core.logging import configure_logging

logger = logging.getLogger("create_db_schema")


async def main():
    """
    One-time script to create the push_subscriptions table in the configured database.
    Uses a temporary async engine built from settings.DATABASE_URL.
    """
    db_url = settings.DATABASE_URL
    if not db_url or settings.use_memory_store:
        raise RuntimeError(f"DATABASE_URL does not point to a database: {db_url}")

    engine = create_engine(db_url)
    try:
        await init_models(engine)
    finally:
        await engine.dispose()
    logger.info("Database schema created/updated successfully.")


if __name__ == "__main__":
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(main())
