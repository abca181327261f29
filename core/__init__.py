"""
Core utilities and configuration for the dataset ingestion service.

This package provides foundational components used throughout the service:

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import create_engine, create_session_maker
    from core.exceptions import SourceNotFoundError, UpstreamFetchError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Open sessions against the configured database
    session_maker = create_session_maker(create_engine(settings.DATABASE_URL))
    async with session_maker() as session:
        ...

"""

__all__ = [
    "settings",
    "create_engine",
    "create_session_maker",
    "setup_logging",
    # Exceptions
    "IngestionException",
    "RetryableError",
    "NonRetryableError",
    "NotFoundError",
    "SourceNotFoundError",
    "ConnectorNotRegisteredError",
    "SourceNotRegisteredError",
    "UpstreamFetchError",
    "UpstreamAuthError",
    "UpstreamNotFoundError",
    "UpstreamRateLimitError",
    "NetworkError",
    "PayloadFormatError",
    "ArchiveFormatError",
    "StorageWriteError",
    "IngestionCancelledError",
    "LedgerError",
    "IngestionFailedError",
]
