"""
Connector for sources that cannot be fetched automatically
"""

from typing import Any, Callable, Dict, Optional, Union

from ingestion.base import ConnectorOutput, DatasetConnector, IngestionContext
from ingestion.sources import DatasetSourceName


class StaticConnector(DatasetConnector):
    """
    Always succeeds with a constant JSON payload.

    Used for sources behind manual or credentialed access; the payload
    explains how to enable real ingestion.
    """

    def __init__(self, source: DatasetSourceName, payload: Union[Any, Callable[[], Any]]):
        super().__init__(source)
        self.payload = payload

    def build_payload(self) -> Any:
        """Payloads given as callables are rebuilt on every attempt"""
        return self.payload() if callable(self.payload) else self.payload

    async def prepare(self, context: IngestionContext) -> ConnectorOutput:
        payload = self.build_payload()
        item_count: Optional[int] = len(payload) if isinstance(payload, list) else None
        metadata: Optional[Dict[str, Any]] = {"itemCount": item_count} if item_count is not None else None

        return ConnectorOutput(
            stream=self.create_json_stream(payload),
            file_extension=".json",
            content_type="application/json",
            metadata=metadata,
            item_count=item_count,
        )
