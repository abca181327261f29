"""
Abstract base class for dataset connectors and the types they exchange with the runner
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Union
import asyncio
import json
import logging

import httpx

from ingestion.sources import DatasetSourceName

logger = logging.getLogger(__name__)

Chunk = Union[bytes, str]


@dataclass
class IngestionContext:
    """
    Everything a connector may need for one attempt.

    The http_client is owned by the runner and stays open until the
    connector's stream has been fully written.
    """
    storage_dir: str
    temp_dir: str
    http_client: httpx.AsyncClient
    logger: logging.Logger
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class ConnectorOutput:
    """
    What a connector produced for one attempt.

    Attributes:
        stream: Async iterator of payload chunks
        file_extension: Extension for the stored artifact (".jsonl", ".zip", ...)
        content_type: Optional mime type of the stored artifact
        metadata: Connector-reported metadata (headers, counts, ...)
        item_count: Optional self-reported item count
    """
    stream: AsyncIterator[Chunk]
    file_extension: str
    content_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    item_count: Optional[int] = None


def dumps_record(record: Any) -> str:
    """Compact JSON encoding used for every emitted record"""
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)


async def iterate_chunks(*chunks: Chunk) -> AsyncIterator[Chunk]:
    """Wrap already-materialized chunks as an async stream"""
    for chunk in chunks:
        yield chunk


class DatasetConnector(ABC):
    """
    Abstract base class for all dataset connectors.

    Responsibilities:
    - Know how to reach one upstream source
    - Produce a lazily consumed byte stream for it
    - Describe the stream (extension, content type, metadata)
    """

    def __init__(self, source: DatasetSourceName):
        self.source = source

    @abstractmethod
    async def prepare(self, context: IngestionContext) -> ConnectorOutput:
        """
        Prepare the payload stream for the dataset.

        Implementations should stream the raw payload without loading
        everything into memory, except where a format forces buffering.
        """
        pass

    def create_json_stream(self, payload: Any) -> AsyncIterator[Chunk]:
        return iterate_chunks(json.dumps(payload, indent=2, ensure_ascii=False, default=str))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source={self.source.value!r})"


def build_auth_headers(api_key_header: Optional[str], api_key: Optional[str]) -> Dict[str, str]:
    """Only send the API key header when both its name and value are configured"""
    if api_key and api_key_header:
        return {api_key_header: api_key}
    return {}
