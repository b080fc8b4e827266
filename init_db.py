#!/usr/bin/env python
"""
Initialize database tables from SQLAlchemy models.
Run this once to create all tables (development; use Alembic elsewhere).
"""

import asyncio

from inspection_engine.core.config import settings
from inspection_engine.core.db import close_db, init_db
from inspection_engine.core.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def main() -> bool:
    configure_logging()
    logger.info("init_db_start", database=settings.async_database_url.split("@")[-1])
    try:
        await init_db()
    except Exception as e:  # noqa: BLE001
        logger.error("init_db_failed", error=str(e))
        return False
    finally:
        await close_db()
    logger.info("init_db_complete")
    return True


if __name__ == "__main__":
    success = asyncio.run(main())
    raise SystemExit(0 if success else 1)
