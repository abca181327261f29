"""
SQLAlchemy ORM models for the snapshot ledger.

Models:
    base: Base declarative class, portable JSON type and SnapshotStatus enum
    dataset_source: Catalog of known upstream sources
    dataset_snapshot: Snapshot history, one row per ingestion invocation

Database Schema:
    JSON columns map to JSONB on PostgreSQL and to JSON on SQLite, so the
    same models back production and the test suite.

Usage:
    from models import DatasetSource, DatasetSnapshot
    from models.base import SnapshotStatus

Relationships:
    - DatasetSource → DatasetSnapshot (one-to-many, append-only history)
"""

from models.base import Base, SnapshotStatus
from models.dataset_source import DatasetSource
from models.dataset_snapshot import DatasetSnapshot

__all__ = [
    "Base",
    "SnapshotStatus",
    "DatasetSource",
    "DatasetSnapshot",
]
