"""
Dataset ingestion runner - turns one ingest request into exactly one snapshot row.

This module provides the orchestration around connectors:
- Source resolution and connector / ledger lookup
- Bounded retries with a fixed backoff
- Streaming the connector output to disk through the hashing writer
- Recording the outcome in the snapshot ledger
- Per-source serialization of concurrent requests
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import logging
import uuid

import httpx

from core.config import Settings, settings as default_settings
from core.exceptions import (
    ConnectorNotRegisteredError,
    IngestionCancelledError,
    IngestionException,
    IngestionFailedError,
    LedgerError,
    NonRetryableError,
    SourceNotRegisteredError,
)
from core.logging import get_dataset_logger
from ingestion.base import ConnectorOutput, DatasetConnector, IngestionContext
from ingestion.catalog import ConnectorRegistry
from ingestion.ledger import SnapshotLedger
from ingestion.sources import DatasetSourceName, resolve_source, source_slug
from ingestion.writer import WriteResult, write_stream
from models.base import SnapshotStatus
from schemas.datasets import SnapshotRecord

logger = logging.getLogger(__name__)

HttpClientFactory = Callable[[], httpx.AsyncClient]
Sleeper = Callable[[float], Awaitable[Any]]

FAILED_EXTENSION = ".failed"


def artifact_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO-8601 time with ':' and '.' made filesystem safe"""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


@dataclass
class AttemptState:
    """Bookkeeping carried across the attempts of one invocation"""
    attempt: int = 0
    snapshot_id: Optional[uuid.UUID] = None
    storage_path: Optional[Path] = None
    last_error: Optional[Exception] = None
    timestamp: str = field(default_factory=artifact_timestamp)


def merge_metadata(output: ConnectorOutput, result: WriteResult) -> Dict[str, Any]:
    """Connector metadata plus content type and item count; a self-reported count wins"""
    item_count = output.item_count if output.item_count is not None else result.item_count
    return {
        **(output.metadata or {}),
        "contentType": output.content_type,
        "itemCount": item_count,
    }


class DatasetIngestionRunner:
    """
    Ingestion orchestrator

    Responsibilities:
    - Resolve a source name to its connector and ledger row
    - Run up to DATASET_MAX_RETRIES attempts, sleeping between them
    - Insert a pending snapshot on the first attempt that gets a stream
    - Mark that snapshot completed (checksum, metadata) or failed (error)
    - Stop early on non-retryable errors or a raised cancel signal
    - Let ledger failures and task cancellation propagate untouched
    """

    def __init__(
        self,
        ledger: SnapshotLedger,
        registry: ConnectorRegistry,
        config: Optional[Settings] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        sleep: Sleeper = asyncio.sleep
    ):
        config = config or default_settings
        self.ledger = ledger
        self.registry = registry
        self.storage_dir = Path(config.DATASET_STORAGE_DIR)
        self.temp_dir = config.DATASET_TEMP_DIR
        self.max_retries = config.DATASET_MAX_RETRIES
        self.backoff_seconds = config.retry_backoff_seconds
        self.http_timeout = config.DATASET_HTTP_TIMEOUT
        self.http_client_factory = http_client_factory or self._default_http_client
        self.sleep = sleep
        self.dataset_logger = get_dataset_logger()
        self._locks: Dict[DatasetSourceName, asyncio.Lock] = {}

    def _default_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True)

    def _lock_for(self, source: DatasetSourceName) -> asyncio.Lock:
        return self._locks.setdefault(source, asyncio.Lock())

    def build_target_path(
        self,
        source: DatasetSourceName,
        extension: str,
        timestamp: Optional[str] = None
    ) -> Path:
        """<storage_dir>/<slug>/<slug>-<timestamp><extension>; every attempt of one invocation shares the timestamp"""
        slug = source_slug(source)
        return self.storage_dir / slug / f"{slug}-{timestamp or artifact_timestamp()}{extension}"

    async def ingest(
        self,
        source_name: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> SnapshotRecord:
        """
        Ingest one source and record exactly one snapshot row for it.

        Args:
            source_name: Catalog name, matched case-insensitively
            cancel_event: Optional signal that aborts the running attempt

        Returns:
            The completed snapshot as read back from the ledger

        Raises:
            SourceNotFoundError: Name is not in the catalog
            ConnectorNotRegisteredError: No connector for the source
            SourceNotRegisteredError: Source has no ledger row
            LedgerError: Snapshot persistence failed (never retried)
            IngestionFailedError: Every attempt failed
        """
        source = resolve_source(source_name)

        connector = self.registry.get(source)
        if connector is None:
            raise ConnectorNotRegisteredError(
                f"No connector registered for {source.value}",
                context={"source": source.value}
            )

        lock = self._lock_for(source)
        if lock.locked():
            logger.info(f"Ingestion of {source.value} already running, waiting")

        async with lock:
            return await self._ingest_locked(source, connector, cancel_event)

    async def _ingest_locked(
        self,
        source: DatasetSourceName,
        connector: DatasetConnector,
        cancel_event: Optional[asyncio.Event]
    ) -> SnapshotRecord:
        source_id = await self.ledger.get_source_id(source.value)
        if source_id is None:
            raise SourceNotRegisteredError(
                f"Dataset source {source.value} is not registered",
                context={"source": source.value}
            )

        state = AttemptState()
        cancel_event = cancel_event or asyncio.Event()

        while state.attempt < self.max_retries:
            state.attempt += 1
            logger.info(f"Ingesting {source.value} (attempt {state.attempt}/{self.max_retries})")

            try:
                return await self._run_attempt(source, source_id, connector, state, cancel_event)

            except LedgerError:
                raise

            except IngestionException as e:
                state.last_error = e
                logger.error(
                    f"Attempt {state.attempt} for {source.value} failed: {e.message}",
                    extra={"error_context": {**e.to_dict(), "attempt": state.attempt}}
                )
                if not self._should_retry(e, cancel_event):
                    logger.info(f"Not retrying {source.value} after {type(e).__name__}")
                    break

            except Exception as e:
                state.last_error = e
                logger.error(
                    f"Attempt {state.attempt} for {source.value} failed unexpectedly: {e}",
                    extra={"error_context": {
                        "source": source.value,
                        "attempt": state.attempt,
                        "error_type": type(e).__name__,
                    }},
                    exc_info=True
                )

            if state.attempt < self.max_retries:
                await self.sleep(self.backoff_seconds)

        snapshot_id = await self._record_failure(source, source_id, state)
        message = str(state.last_error) if state.last_error is not None else "Ingestion failed"

        raise IngestionFailedError(
            message,
            context={
                "source": source.value,
                "attempts": state.attempt,
                "snapshot_id": str(snapshot_id),
            },
            original_exception=state.last_error
        )

    @staticmethod
    def _should_retry(error: IngestionException, cancel_event: asyncio.Event) -> bool:
        """Non-retryable errors and a raised cancel signal end the invocation"""
        if isinstance(error, NonRetryableError):
            return False
        return not (isinstance(error, IngestionCancelledError) and cancel_event.is_set())

    async def _run_attempt(
        self,
        source: DatasetSourceName,
        source_id: int,
        connector: DatasetConnector,
        state: AttemptState,
        cancel_event: asyncio.Event
    ) -> SnapshotRecord:
        # The client stays open until the stream is fully written
        async with self.http_client_factory() as client:
            context = IngestionContext(
                storage_dir=str(self.storage_dir),
                temp_dir=self.temp_dir,
                http_client=client,
                logger=self.dataset_logger,
                cancel_event=cancel_event,
            )

            output = await connector.prepare(context)
            destination = self.build_target_path(source, output.file_extension, state.timestamp)

            if state.snapshot_id is None:
                state.snapshot_id = await self.ledger.insert_snapshot(
                    source_id, SnapshotStatus.PENDING, str(destination)
                )
            state.storage_path = destination

            result = await write_stream(output, destination, cancel_event)

        metadata = merge_metadata(output, result)
        await self.ledger.update_snapshot(
            state.snapshot_id,
            SnapshotStatus.COMPLETED,
            checksum=result.checksum,
            metadata=metadata,
            storage_location=str(destination),
        )

        logger.info(
            f"Ingested {source.value} into {destination} "
            f"(items={metadata['itemCount']}, sha256={result.checksum[:12]})"
        )

        snapshot = await self.ledger.latest_snapshot(source.value)
        if snapshot is None:
            raise LedgerError(
                f"Completed snapshot for {source.value} could not be read back",
                context={"operation": "SELECT", "snapshot_id": str(state.snapshot_id)}
            )
        return snapshot

    async def _record_failure(
        self,
        source: DatasetSourceName,
        source_id: int,
        state: AttemptState
    ) -> uuid.UUID:
        """Mark the invocation's snapshot failed, inserting one if no attempt got that far"""
        error = str(state.last_error) if state.last_error is not None else "Ingestion failed"

        if state.snapshot_id is not None:
            await self.ledger.update_snapshot(
                state.snapshot_id,
                SnapshotStatus.FAILED,
                error=error,
                metadata={"storageLocation": str(state.storage_path)},
                storage_location=str(state.storage_path),
            )
            return state.snapshot_id

        placeholder = self.build_target_path(source, FAILED_EXTENSION, state.timestamp)
        return await self.ledger.insert_snapshot(
            source_id, SnapshotStatus.FAILED, str(placeholder), error=error
        )
