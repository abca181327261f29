"""
Health check endpoint with database and ingestion status
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_ledger
from core.exceptions import LedgerError
from ingestion.ledger import SnapshotLedger
from models.base import SnapshotStatus
from schemas.datasets import HealthResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


def overall_status(database_connected: bool, ingested: int, failed: int) -> str:
    """healthy when nothing failed, degraded on partial failure, unhealthy otherwise"""
    if not database_connected:
        return "unhealthy"
    if failed == 0:
        return "healthy"
    if failed < ingested:
        return "degraded"
    return "unhealthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    ledger: SnapshotLedger = Depends(get_ledger)
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Number of sources per latest snapshot status
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    counts = {status.value: 0 for status in SnapshotStatus}
    total_sources = 0
    never_ingested = 0

    if db_connected:
        try:
            sources = await ledger.list_sources()
            total_sources = len(sources)
            for source in sources:
                if source.latest_snapshot is None:
                    never_ingested += 1
                else:
                    counts[source.latest_snapshot.status] += 1
        except LedgerError as e:
            logger.error(f"Failed to read dataset sources: {e}")

    failed = counts[SnapshotStatus.FAILED.value]
    ingested = total_sources - never_ingested

    return HealthResponse(
        status=overall_status(db_connected, ingested, failed),
        database_connected=db_connected,
        total_sources=total_sources,
        completed_sources=counts[SnapshotStatus.COMPLETED.value],
        failed_sources=failed,
        pending_sources=counts[SnapshotStatus.PENDING.value],
        never_ingested_sources=never_ingested
    )
