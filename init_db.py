# init_db.py
import asyncio
import logging

from app.core.logging import configure_logging
from app.db.sql import engine, init_models

logger = logging.getLogger("init_db")


async def main():
    # Drops and recreates providers, provider_availability and availability_slots
    await init_models(drop=True)
    await engine.dispose()
    logger.info("Database schema recreated successfully!")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
