"""
Pydantic schemas for dataset sources, snapshots and API responses
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from models.base import SnapshotStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Serialized with camelCase keys, populated with either form"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
        use_enum_values = True


# ============================================================================
# Snapshot Schemas
# ============================================================================

class SnapshotRecord(CamelModel):
    """One recorded ingestion attempt outcome"""
    id: UUID
    source: str
    status: SnapshotStatus
    storage_location: str
    checksum: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "source": "DailyMed",
                "status": "completed",
                "storageLocation": "storage/datasets/dailymed/dailymed-2024-01-15T03-00-00-000Z.jsonl",
                "checksum": "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08",
                "metadata": {"contentType": "application/jsonl", "itemCount": 1500},
                "error": None,
                "createdAt": "2024-01-15T03:00:00Z",
                "completedAt": "2024-01-15T03:02:41Z"
            }
        }


# ============================================================================
# Source Schemas
# ============================================================================

class SourceRecord(CamelModel):
    """Catalog entry with its most recent snapshot"""
    id: int
    source: str
    description: Optional[str] = None
    created_at: datetime
    latest_snapshot: Optional[SnapshotRecord] = None


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthResponse(CamelModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    database_connected: bool
    total_sources: int = 0
    completed_sources: int = 0
    failed_sources: int = 0
    pending_sources: int = 0
    never_ingested_sources: int = 0


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    status: str = "error"
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "status": "error",
                "message": "No snapshots recorded for DailyMed"
            }
        }
