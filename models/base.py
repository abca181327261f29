from sqlalchemy import JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class SnapshotStatus(str, enum.Enum):
    """Dataset snapshot status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def snapshot_status_column_type() -> Enum:
    """Store the enum values ("pending"), not the member names"""
    return Enum(
        SnapshotStatus,
        name="snapshot_status",
        native_enum=False,
        length=16,
        values_callable=lambda members: [member.value for member in members],
    )
