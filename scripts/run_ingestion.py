"""
Script to ingest dataset sources once, outside the API process.

Usage:
    python scripts/run_ingestion.py                 # DATASET_SCHEDULED_SOURCES
    python scripts/run_ingestion.py DailyMed NPPES  # explicit sources
"""

import argparse
import asyncio
import sys
import os
import logging
from typing import List, Optional

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine, create_session_maker, create_tables
from core.exceptions import IngestionException
from core.logging import setup_logging
from ingestion.catalog import build_connector_registry
from ingestion.ledger import SnapshotLedger
from ingestion.runner import DatasetIngestionRunner
from ingestion.sources import DatasetSourceName

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest dataset sources and record snapshots")
    parser.add_argument(
        "sources",
        nargs="*",
        help="Source names (case-insensitive); defaults to DATASET_SCHEDULED_SOURCES"
    )
    return parser.parse_args(argv)


async def run_ingestion(source_names: List[str]) -> int:
    """Ingest each source in turn; returns the number of failures"""
    if not source_names:
        logger.warning("No dataset sources given or scheduled. Skipping ingestion.")
        return 0

    engine = create_engine(settings.DATABASE_URL)
    failures = 0

    try:
        await create_tables(engine)
        ledger = SnapshotLedger(create_session_maker(engine))
        await ledger.register_sources(source.value for source in DatasetSourceName)

        runner = DatasetIngestionRunner(ledger, build_connector_registry(settings), config=settings)

        for name in source_names:
            try:
                logger.info(f"Running ingestion for source: {name}")
                snapshot = await runner.ingest(name)
                logger.info(
                    f"Ingestion completed for {snapshot.source}: "
                    f"location={snapshot.storage_location}, "
                    f"items={snapshot.metadata.get('itemCount')}"
                )
            except IngestionException as e:
                failures += 1
                logger.error(f"Ingestion failed for {name}: {e}")
                continue

        logger.info("All ingestion jobs completed")
    finally:
        await engine.dispose()

    return failures


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    failed = asyncio.run(run_ingestion(args.sources or settings.scheduled_sources))
    sys.exit(1 if failed else 0)
