"""
Single-download connector for bulk dataset files
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ingestion.base import ConnectorOutput, DatasetConnector, IngestionContext, build_auth_headers
from ingestion.connectors.responses import http_status_error
from ingestion.sources import DatasetSourceName
from core.exceptions import IngestionCancelledError, NetworkError, UpstreamFetchError


@dataclass
class BulkFileConfig:
    download_url: str
    api_key_header: Optional[str] = None
    api_key: Optional[str] = None


class BulkFileConnector(DatasetConnector):
    """
    Download one file and hand its body to the writer as a stream.

    The response body is never buffered; chunks flow straight from the
    socket to the snapshot artifact.
    """

    def __init__(self, source: DatasetSourceName, config: BulkFileConfig):
        super().__init__(source)
        self.config = config

    async def open_download(self, context: IngestionContext) -> httpx.Response:
        """Send the GET and return the still-streaming response"""
        context.logger.info(f"Downloading {self.source.value} from {self.config.download_url}")
        error_context = {"source": self.source.value, "url": self.config.download_url}

        request = context.http_client.build_request(
            "GET",
            self.config.download_url,
            headers=build_auth_headers(self.config.api_key_header, self.config.api_key),
        )

        try:
            response = await context.http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Timed out downloading {self.source.value}",
                context=error_context,
                original_exception=e
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network error downloading {self.source.value}: {e}",
                context=error_context,
                original_exception=e
            )

        if not response.is_success:
            await response.aclose()
            raise http_status_error(response, f"Failed to download {self.source.value}", error_context)

        return response

    async def iterate_body(self, response: httpx.Response, context: IngestionContext) -> AsyncIterator[bytes]:
        received = 0
        try:
            async for chunk in response.aiter_bytes():
                if context.cancelled:
                    raise IngestionCancelledError(
                        f"Download of {self.source.value} cancelled",
                        context={"source": self.source.value, "bytes_received": received}
                    )
                received += len(chunk)
                yield chunk

            if received == 0:
                raise UpstreamFetchError(
                    f"Download of {self.source.value} returned an empty body",
                    context={"source": self.source.value, "url": self.config.download_url}
                )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Connection lost while downloading {self.source.value}: {e}",
                context={"source": self.source.value, "url": self.config.download_url},
                original_exception=e
            )
        finally:
            await response.aclose()

    def get_file_extension(self, response: httpx.Response) -> str:
        content_type = response.headers.get("content-type", "")
        if "zip" in content_type.lower():
            return ".zip"
        return ".bin"

    def get_metadata(self, response: httpx.Response) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"downloadUrl": self.config.download_url}
        for header, key in (
            ("content-length", "contentLength"),
            ("etag", "etag"),
            ("last-modified", "lastModified"),
        ):
            value = response.headers.get(header)
            if value is not None:
                metadata[key] = int(value) if key == "contentLength" and value.isdigit() else value
        return metadata

    async def prepare(self, context: IngestionContext) -> ConnectorOutput:
        response = await self.open_download(context)
        return ConnectorOutput(
            stream=self.iterate_body(response, context),
            file_extension=self.get_file_extension(response),
            content_type=response.headers.get("content-type"),
            metadata=self.get_metadata(response),
        )
