"""
Pydantic schemas for API responses and ledger read models.

Schemas:
    datasets: Source and snapshot records, health and error responses

Records serialize with camelCase keys (storageLocation, createdAt,
latestSnapshot) and accept either casing on input.

Usage:
    from schemas import SnapshotRecord, SourceRecord
    from schemas.datasets import HealthResponse
"""

from schemas.datasets import (
    ErrorResponse,
    HealthResponse,
    SnapshotRecord,
    SourceRecord,
)

__all__ = [
    "SnapshotRecord",
    "SourceRecord",
    "HealthResponse",
    "ErrorResponse",
]
