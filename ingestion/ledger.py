"""
Snapshot ledger: durable record of dataset sources and their snapshot history.

Every write runs in its own short transaction, so a snapshot row is always
inserted and committed before any update touches it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import logging
import uuid

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from models.base import SnapshotStatus
from models.dataset_snapshot import DatasetSnapshot
from models.dataset_source import DatasetSource
from schemas.datasets import SnapshotRecord, SourceRecord
from core.exceptions import LedgerError

logger = logging.getLogger(__name__)


def _upsert_ignore_statement(dialect_name: str, rows: List[Dict[str, Any]]):
    """INSERT ... ON CONFLICT (source) DO NOTHING for the dialects we run on"""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    return insert(DatasetSource).values(rows).on_conflict_do_nothing(index_elements=["source"])


def to_snapshot_record(snapshot: DatasetSnapshot, source_name: str) -> SnapshotRecord:
    return SnapshotRecord(
        id=snapshot.id,
        source=source_name,
        status=snapshot.status,
        storage_location=snapshot.storage_location,
        checksum=snapshot.checksum,
        metadata=snapshot.snapshot_metadata or {},
        error=snapshot.error,
        created_at=snapshot.created_at,
        completed_at=snapshot.completed_at,
    )


class SnapshotLedger:
    """
    Async access to the dataset_sources / dataset_snapshots tables.

    Write surface (used by the ingestion runner):
    - register_sources: idempotent upsert of catalog names
    - insert_snapshot / update_snapshot

    Read surface (used by the API):
    - list_sources: every source with its latest snapshot or None
    - latest_snapshot: newest snapshot for one source
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def register_sources(self, names: Iterable[str]) -> int:
        """Insert any missing source rows; returns how many names were requested"""
        now = datetime.now(timezone.utc)
        rows = [{"source": name, "created_at": now} for name in names]
        if not rows:
            return 0

        try:
            async with self.session_maker() as session:
                stmt = _upsert_ignore_statement(session.bind.dialect.name, rows)
                if stmt is not None:
                    await session.execute(stmt)
                else:
                    await self._register_missing(session, rows)
                await session.commit()
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to register dataset sources",
                context={"operation": "UPSERT", "table_name": "dataset_sources", "sources": len(rows)},
                original_exception=e
            )

        logger.info(f"Registered {len(rows)} dataset sources")
        return len(rows)

    async def _register_missing(self, session: AsyncSession, rows: List[Dict[str, Any]]):
        result = await session.execute(select(DatasetSource.source))
        existing = set(result.scalars().all())
        for row in rows:
            if row["source"] not in existing:
                session.add(DatasetSource(source=row["source"]))
                existing.add(row["source"])

    async def get_source_id(self, name: str) -> Optional[int]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(DatasetSource.id).where(DatasetSource.source == name)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerError(
                f"Failed to look up dataset source {name}",
                context={"operation": "SELECT", "table_name": "dataset_sources"},
                original_exception=e
            )

    async def insert_snapshot(
        self,
        source_id: int,
        status: SnapshotStatus,
        storage_location: str,
        error: Optional[str] = None
    ) -> uuid.UUID:
        """Insert a snapshot row; anything other than pending is stamped as completed"""
        snapshot_id = uuid.uuid4()
        now = datetime.now(timezone.utc)
        try:
            async with self.session_maker() as session:
                session.add(DatasetSnapshot(
                    id=snapshot_id,
                    source_id=source_id,
                    status=status,
                    storage_location=storage_location,
                    snapshot_metadata={},
                    error=error,
                    created_at=now,
                    completed_at=None if status == SnapshotStatus.PENDING else now,
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to insert dataset snapshot",
                context={"operation": "INSERT", "table_name": "dataset_snapshots", "source_id": source_id},
                original_exception=e
            )
        return snapshot_id

    async def update_snapshot(
        self,
        snapshot_id: uuid.UUID,
        status: SnapshotStatus,
        checksum: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        storage_location: Optional[str] = None
    ):
        """
        Finalize a snapshot and stamp completed_at.

        checksum, metadata and storage_location keep their stored value when
        passed as None; error is always overwritten.
        """
        values: Dict[Any, Any] = {
            DatasetSnapshot.status: status,
            DatasetSnapshot.error: error,
            DatasetSnapshot.completed_at: datetime.now(timezone.utc),
        }
        if checksum is not None:
            values[DatasetSnapshot.checksum] = checksum
        if metadata is not None:
            values[DatasetSnapshot.snapshot_metadata] = metadata
        if storage_location is not None:
            values[DatasetSnapshot.storage_location] = storage_location

        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(DatasetSnapshot)
                    .where(DatasetSnapshot.id == snapshot_id)
                    .values(values)
                )
                await session.commit()
                updated_rows = result.rowcount
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to update dataset snapshot",
                context={
                    "operation": "UPDATE",
                    "table_name": "dataset_snapshots",
                    "snapshot_id": str(snapshot_id),
                },
                original_exception=e
            )

        if updated_rows == 0:
            raise LedgerError(
                "Snapshot to update does not exist",
                context={"operation": "UPDATE", "snapshot_id": str(snapshot_id)}
            )

    async def latest_snapshot(self, name: str) -> Optional[SnapshotRecord]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(DatasetSnapshot)
                    .join(DatasetSource, DatasetSource.id == DatasetSnapshot.source_id)
                    .where(DatasetSource.source == name)
                    .order_by(DatasetSnapshot.created_at.desc())
                    .limit(1)
                )
                snapshot = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerError(
                f"Failed to read latest snapshot for {name}",
                context={"operation": "SELECT", "table_name": "dataset_snapshots"},
                original_exception=e
            )

        if snapshot is None:
            return None
        return to_snapshot_record(snapshot, name)

    async def list_sources(self) -> List[SourceRecord]:
        ranked = select(
            DatasetSnapshot,
            func.row_number().over(
                partition_by=DatasetSnapshot.source_id,
                order_by=DatasetSnapshot.created_at.desc()
            ).label("rank")
        ).subquery()
        latest = aliased(DatasetSnapshot, ranked)

        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(DatasetSource, latest)
                    .outerjoin(latest, and_(latest.source_id == DatasetSource.id, ranked.c.rank == 1))
                    .order_by(DatasetSource.source)
                )
                rows = result.all()
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to list dataset sources",
                context={"operation": "SELECT", "table_name": "dataset_sources"},
                original_exception=e
            )

        return [
            SourceRecord(
                id=source.id,
                source=source.source,
                description=source.description,
                created_at=source.created_at,
                latest_snapshot=to_snapshot_record(snapshot, source.source) if snapshot is not None else None,
            )
            for source, snapshot in rows
        ]
