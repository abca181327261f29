"""
Paginated REST API connector.

Fetches an upstream listing page by page and re-emits every item as one
line of JSON. Pages are requested lazily, only as the writer consumes the
stream, so a large listing never sits in memory.

Continuation is decided per source:
- parse_items() pulls the item list out of a page body
- has_more() decides whether another page exists; the default stops after
  the first empty page, sources with authoritative totals override it
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import urljoin

import httpx

from ingestion.base import (
    ConnectorOutput,
    DatasetConnector,
    IngestionContext,
    build_auth_headers,
    dumps_record,
)
from ingestion.sources import DatasetSourceName
from ingestion.connectors.responses import http_status_error
from core.exceptions import IngestionCancelledError, NetworkError, PayloadFormatError

PAGE_MODE = "page"
OFFSET_MODE = "offset"


@dataclass
class PagedApiConfig:
    """
    Attributes:
        base_url: Base URL of the upstream API
        resource_path: Path appended to the base URL for the listing
        page_param: Query parameter carrying the page number or offset
        page_size_param: Optional query parameter for the page size
        default_page_size: Page size sent with every request
        mode: "page" counts 1, 2, 3...; "offset" counts 0, size, 2*size...
        static_params: Extra query parameters sent with every request
        api_key_header: Optional API key header name
        api_key: Optional API key value
    """
    base_url: str
    resource_path: str
    page_param: str
    page_size_param: Optional[str] = None
    default_page_size: Optional[int] = None
    mode: str = PAGE_MODE
    static_params: Dict[str, Any] = field(default_factory=dict)
    api_key_header: Optional[str] = None
    api_key: Optional[str] = None


class PagedApiConnector(DatasetConnector):
    """
    Connector for paginated JSON APIs.

    Subclasses implement parse_items() and may override has_more().
    Any non-2xx page fails the whole attempt; no page is skipped silently.
    """

    def __init__(self, source: DatasetSourceName, config: PagedApiConfig):
        super().__init__(source)
        if config.mode not in (PAGE_MODE, OFFSET_MODE):
            raise ValueError(f"Unsupported pagination mode: {config.mode}")
        if config.mode == OFFSET_MODE and not config.default_page_size:
            raise ValueError("Offset pagination needs a default_page_size")
        self.config = config

    @property
    def url(self) -> str:
        base_url = self.config.base_url if self.config.base_url.endswith("/") else f"{self.config.base_url}/"
        return urljoin(base_url, self.config.resource_path)

    def build_headers(self) -> Dict[str, str]:
        return build_auth_headers(self.config.api_key_header, self.config.api_key)

    def build_params(self, cursor: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {self.config.page_param: cursor}
        if self.config.page_size_param and self.config.default_page_size:
            params[self.config.page_size_param] = self.config.default_page_size
        params.update(self.config.static_params)
        return params

    def first_cursor(self) -> int:
        return 0 if self.config.mode == OFFSET_MODE else 1

    def next_cursor(self, cursor: int) -> int:
        if self.config.mode == OFFSET_MODE:
            return cursor + self.config.default_page_size
        return cursor + 1

    @abstractmethod
    def parse_items(self, body: Any) -> List[Any]:
        """Extract the page's items from a decoded JSON body"""
        pass

    def has_more(self, body: Any, page_items: List[Any]) -> bool:
        """Default continuation: keep going while pages are non-empty"""
        return len(page_items) > 0

    async def fetch_page(self, context: IngestionContext, cursor: int) -> Any:
        """
        Fetch and decode one page.

        Raises:
            UpstreamFetchError: Non-2xx responses (with specific subclasses)
            NetworkError: Timeouts and transport failures
            PayloadFormatError: Body is not JSON
        """
        error_context = {
            "source": self.source.value,
            "url": self.url,
            "page": cursor,
        }

        try:
            response = await context.http_client.get(
                self.url,
                params=self.build_params(cursor),
                headers=self.build_headers(),
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Timed out fetching {self.source.value} page {cursor}",
                context=error_context,
                original_exception=e
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network error fetching {self.source.value} page {cursor}: {e}",
                context=error_context,
                original_exception=e
            )

        if not response.is_success:
            raise http_status_error(
                response,
                f"Failed to fetch {self.source.value} page {cursor}",
                error_context
            )

        try:
            return response.json()
        except ValueError as e:
            raise PayloadFormatError(
                f"Failed to parse JSON for {self.source.value} page {cursor}",
                context={**error_context, "response_body": response.text[:500]},
                original_exception=e
            )

    async def iterate_records(self, context: IngestionContext) -> AsyncIterator[str]:
        cursor = self.first_cursor()

        while True:
            if context.cancelled:
                raise IngestionCancelledError(
                    f"Ingestion of {self.source.value} cancelled",
                    context={"source": self.source.value, "page": cursor}
                )

            context.logger.info(f"Requesting {self.source.value} page {cursor} from {self.url}")
            body = await self.fetch_page(context, cursor)
            page_items = self.parse_items(body)

            if not page_items:
                break

            for item in page_items:
                yield f"{dumps_record(item)}\n"

            if not self.has_more(body, page_items):
                break

            cursor = self.next_cursor(cursor)

    async def prepare(self, context: IngestionContext) -> ConnectorOutput:
        return ConnectorOutput(
            stream=self.iterate_records(context),
            file_extension=".jsonl",
            content_type="application/jsonl",
        )

