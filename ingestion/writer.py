"""
Streaming writer that persists a connector's output while hashing it.

Single forward pass over the stream: every chunk is hashed and written as
it arrives, nothing is buffered beyond one partial line and nothing is
re-read. For JSON-lines output the writer also counts records, carrying a
record split across two chunks over to the next chunk.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import asyncio
import hashlib
import logging

from ingestion.base import ConnectorOutput
from core.exceptions import IngestionCancelledError, StorageWriteError

logger = logging.getLogger(__name__)

JSONL_EXTENSION = ".jsonl"


@dataclass
class WriteResult:
    checksum: str
    item_count: Optional[int] = None


class RecordCounter:
    """Counts non-empty newline-terminated records across arbitrary chunk boundaries"""

    def __init__(self):
        self.count: Optional[int] = None
        self._remainder = b""

    def feed(self, chunk: bytes):
        parts = (self._remainder + chunk).split(b"\n")
        self._remainder = parts.pop()
        complete = sum(1 for line in parts if line.strip())
        if complete:
            self.count = (self.count or 0) + complete

    def finish(self) -> Optional[int]:
        if self._remainder.strip():
            self.count = (self.count or 0) + 1
        self._remainder = b""
        return self.count


def _to_bytes(chunk: Union[bytes, str]) -> bytes:
    return chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)


async def discard_partial(destination: Path):
    """Remove the file left by an aborted write"""
    try:
        await asyncio.to_thread(destination.unlink, missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial snapshot file {destination}: {e}")


async def write_stream(
    output: ConnectorOutput,
    destination: Union[str, Path],
    cancel_event: Optional[asyncio.Event] = None
) -> WriteResult:
    """
    Stream a connector output to disk.

    Args:
        output: Connector output to consume
        destination: Artifact path; parent directories are created
        cancel_event: Optional signal checked between chunks

    Returns:
        WriteResult with the SHA-256 hex digest of every byte written and,
        for .jsonl output, the number of records seen (None if none)

    Raises:
        IngestionCancelledError: cancel_event was set mid-stream
        StorageWriteError: the artifact could not be written

    Any failure while writing removes the partial file. Task cancellation
    leaves it in place.
    """
    destination = Path(destination)
    digest = hashlib.sha256()
    counter = RecordCounter() if output.file_extension == JSONL_EXTENSION else None

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        handle = await asyncio.to_thread(open, destination, "wb")
    except OSError as e:
        raise StorageWriteError(
            f"Cannot open snapshot file {destination}: {e}",
            context={"destination": str(destination)},
            original_exception=e
        )

    bytes_written = 0
    failed = False
    try:
        async for chunk in output.stream:
            if cancel_event is not None and cancel_event.is_set():
                raise IngestionCancelledError(
                    f"Write to {destination} cancelled",
                    context={"destination": str(destination), "bytes_written": bytes_written}
                )

            data = _to_bytes(chunk)
            if not data:
                continue

            digest.update(data)
            if counter is not None:
                counter.feed(data)

            await asyncio.to_thread(handle.write, data)
            bytes_written += len(data)
    except OSError as e:
        failed = True
        raise StorageWriteError(
            f"Failed writing snapshot file {destination}: {e}",
            context={"destination": str(destination), "bytes_written": bytes_written},
            original_exception=e
        )
    except Exception:
        failed = True
        raise
    finally:
        await asyncio.to_thread(handle.close)
        aclose = getattr(output.stream, "aclose", None)
        if aclose is not None:
            await aclose()
        if failed:
            await discard_partial(destination)

    item_count = counter.finish() if counter is not None else None
    logger.debug(f"Wrote {bytes_written} bytes to {destination} (items={item_count})")

    return WriteResult(checksum=digest.hexdigest(), item_count=item_count)
