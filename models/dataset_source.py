from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatasetSource(Base):
    """
    Catalog entry for one upstream dataset provider.

    Design:
    - One row per known source, registered at startup by idempotent upsert
    - `source` holds the human-readable name (e.g. "OpenFDA")
    - Never deleted while the service runs
    """
    __tablename__ = "dataset_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    snapshots = relationship("DatasetSnapshot", back_populates="source", passive_deletes=True)
