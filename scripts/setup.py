#!/usr/bin/env python3
"""Setup script for the tour catalog sync service."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from catalog_sync.core.config import settings
from catalog_sync.core.database import async_session_factory, close_db
from catalog_sync.services.catalog_store import CatalogStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database():
    """Bring the database schema up to the latest migration."""
    logger.info("Setting up database...")

    try:
        alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
        alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

        # env.py runs its own event loop, so this must stay outside asyncio.run
        logger.info("Running database migrations...")
        command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations completed")

    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise


async def seed_operators():
    """Create an operator row for every configured brand."""
    logger.info("Seeding tour operators...")

    try:
        async with async_session_factory() as db:
            store = CatalogStore(db)
            for brand in settings.sync_brands:
                operator = await store.get_or_create_operator(
                    code=brand, name=brand, provider=settings.catalog_provider
                )
                logger.info(f"Operator ready: {operator.code}")
    finally:
        await close_db()


def main():
    """Main setup function."""
    logger.info("Starting tour catalog sync setup...")

    setup_database()
    asyncio.run(seed_operators())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn catalog_sync.main:app --reload")


if __name__ == "__main__":
    main()
