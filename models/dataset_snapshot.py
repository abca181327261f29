from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid
from models.base import Base, JSONType, SnapshotStatus, snapshot_status_column_type


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatasetSnapshot(Base):
    """
    Durable outcome of one ingestion invocation for a source.

    Purpose:
    - Append-only snapshot history per source
    - "Latest snapshot" is derived from created_at, never stored
    - Retries of one invocation share a single row

    Lifecycle:
    - Inserted as `pending` when the first attempt has produced a stream
    - Updated to `completed` (checksum + metadata) or `failed` (error)
    """
    __tablename__ = "dataset_snapshots"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_id = Column(
        Integer,
        ForeignKey("dataset_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(snapshot_status_column_type(), default=SnapshotStatus.PENDING, nullable=False)
    storage_location = Column(String(1024), nullable=False)
    checksum = Column(String(64), nullable=True)
    snapshot_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    source = relationship("DatasetSource", back_populates="snapshots")

    __table_args__ = (
        Index("idx_snapshot_source_created", "source_id", "created_at"),
    )
