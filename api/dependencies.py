"""
FastAPI dependencies resolving the services stored on app.state
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.ledger import SnapshotLedger
from ingestion.runner import DatasetIngestionRunner


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    async with request.app.state.session_maker() as session:
        yield session


def get_ledger(request: Request) -> SnapshotLedger:
    return request.app.state.ledger


def get_runner(request: Request) -> DatasetIngestionRunner:
    return request.app.state.runner
