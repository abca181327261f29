"""
Dataset catalog endpoints: list sources, read the latest snapshot, trigger ingestion
"""

from typing import List

from fastapi import APIRouter, Depends, status

from api.dependencies import get_ledger, get_runner
from api.errors import error_response
from ingestion.ledger import SnapshotLedger
from ingestion.runner import DatasetIngestionRunner
from ingestion.sources import resolve_source
from schemas.datasets import ErrorResponse, SnapshotRecord, SourceRecord

router = APIRouter(prefix="/api/datasets", tags=["Datasets"])


@router.get("", response_model=List[SourceRecord])
async def list_dataset_sources(ledger: SnapshotLedger = Depends(get_ledger)):
    """Every registered source with its latest snapshot (or null)"""
    return await ledger.list_sources()


# Source names may contain "/" (e.g. "CDC/NIH Guidelines"), hence the path converter
@router.get(
    "/{source:path}/latest",
    response_model=SnapshotRecord,
    responses={404: {"model": ErrorResponse}}
)
async def get_latest_snapshot(source: str, ledger: SnapshotLedger = Depends(get_ledger)):
    dataset_source = resolve_source(source)
    snapshot = await ledger.latest_snapshot(dataset_source.value)
    if snapshot is None:
        return error_response(404, f"No snapshots recorded for {dataset_source.value}")
    return snapshot


@router.post(
    "/{source:path}/ingest",
    response_model=SnapshotRecord,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def ingest_dataset(source: str, runner: DatasetIngestionRunner = Depends(get_runner)):
    """
    Run one ingestion synchronously and return the completed snapshot.

    Exhausted retries surface as a 500 carrying the last upstream message.
    """
    return await runner.ingest(source)
