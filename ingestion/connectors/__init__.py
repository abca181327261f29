"""
Connector variants.

Modules:
    paged_api: Paginated REST APIs re-emitted as JSON lines
    bulk_file: Single streamed download of an opaque file
    archive: ZIP download transcoded from delimited text to JSON lines
    static: Constant placeholder payload for credential-gated sources
    responses: HTTP error mapping shared by the HTTP-backed variants
"""

from ingestion.connectors.paged_api import PagedApiConfig, PagedApiConnector
from ingestion.connectors.bulk_file import BulkFileConfig, BulkFileConnector
from ingestion.connectors.archive import ArchiveRecordsConnector, transcode_archive
from ingestion.connectors.static import StaticConnector

__all__ = [
    "PagedApiConfig",
    "PagedApiConnector",
    "BulkFileConfig",
    "BulkFileConnector",
    "ArchiveRecordsConnector",
    "transcode_archive",
    "StaticConnector",
]
