import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine, create_session_maker, create_tables
from core.logging import setup_logging
from ingestion.ledger import SnapshotLedger
from ingestion.sources import DatasetSourceName

logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    engine = create_engine(settings.DATABASE_URL)

    try:
        logger.info("Creating tables...")
        await create_tables(engine)

        ledger = SnapshotLedger(create_session_maker(engine))
        registered = await ledger.register_sources(source.value for source in DatasetSourceName)
        logger.info(f"Dataset catalog registered ({registered} sources).")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
