"""
Custom exceptions for the dataset ingestion subsystem with structured error context.

This module provides the exception hierarchy used by connectors, the
streaming writer, the snapshot ledger and the ingestion runner. Each
exception carries context information for debugging and logging.

Exception Hierarchy:
    IngestionException (base)
    ├── NotFoundError
    │   ├── SourceNotFoundError
    │   ├── ConnectorNotRegisteredError
    │   └── SourceNotRegisteredError
    ├── UpstreamFetchError
    │   ├── UpstreamAuthError
    │   ├── UpstreamNotFoundError
    │   ├── UpstreamRateLimitError
    │   └── NetworkError
    ├── PayloadFormatError
    │   └── ArchiveFormatError
    ├── StorageWriteError
    ├── IngestionCancelledError
    ├── LedgerError
    ├── IngestionFailedError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class IngestionException(Exception):
    """
    Base exception for all ingestion-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, url, attempt, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        return self.message

    def describe(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestionException):
    """
    Mixin for errors the ingestion runner retries.

    Covers transient upstream trouble (non-2xx responses, timeouts, dropped
    connections) and malformed bodies, which a transient glitch can produce.
    """
    pass


class NonRetryableError(IngestionException):
    """
    Mixin for errors the ingestion runner never retries.

    Covers unknown sources and ledger (persistence) failures. A ledger
    failure propagates as is; any other one raised inside an attempt ends
    the invocation with a failed snapshot.
    """
    pass


# ============================================================================
# Not Found Errors
# ============================================================================

class NotFoundError(NonRetryableError):
    """Base exception for lookups that found nothing."""
    pass


class SourceNotFoundError(NotFoundError):
    """Raised when a source name does not match any known dataset source."""
    pass


class ConnectorNotRegisteredError(NotFoundError):
    """Raised when a known source has no connector in the registry."""
    pass


class SourceNotRegisteredError(NotFoundError):
    """Raised when a known source has no row in the ledger."""
    pass


# ============================================================================
# Upstream Errors
# ============================================================================

class UpstreamFetchError(RetryableError):
    """
    Exception raised when an upstream request fails.

    Context should include:
        - source: Dataset source name
        - url: The URL that failed
        - status_code: HTTP status code (if applicable)
        - page: Page or offset being fetched (paged connectors)
    """
    pass


class UpstreamAuthError(UpstreamFetchError):
    """Upstream rejected the credentials (HTTP 401, 403)."""
    pass


class UpstreamNotFoundError(UpstreamFetchError):
    """Upstream resource is missing (HTTP 404)."""
    pass


class UpstreamRateLimitError(UpstreamFetchError):
    """Upstream is rate limiting us (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class NetworkError(UpstreamFetchError):
    """Timeouts and transport-level failures."""
    pass


# ============================================================================
# Format Errors
# ============================================================================

class PayloadFormatError(RetryableError):
    """
    Exception raised when an upstream body has an unexpected shape.

    Context should include:
        - source: Dataset source name
        - url: The URL that produced the body
        - response_body: Body excerpt (truncated)
    """
    pass


class ArchiveFormatError(PayloadFormatError):
    """
    Exception raised when a downloaded archive cannot be transcoded.

    Context should include:
        - source: Dataset source name
        - member_suffix: Expected member suffix
        - members: Names found in the archive
    """
    pass


# ============================================================================
# Storage Errors
# ============================================================================

class StorageWriteError(RetryableError):
    """
    Exception raised when the snapshot artifact cannot be written.

    Context should include:
        - destination: Target file path
    """
    pass


class IngestionCancelledError(RetryableError):
    """Raised when the attempt's cancellation signal is set mid-stream."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class LedgerError(NonRetryableError):
    """
    Exception raised when reading or writing the snapshot ledger fails.

    Context should include:
        - operation: Ledger operation (INSERT, UPDATE, SELECT, UPSERT)
        - table_name: Name of the table
    """
    pass


# ============================================================================
# Terminal Errors
# ============================================================================

class IngestionFailedError(IngestionException):
    """
    Raised once every attempt of an ingestion invocation has failed.

    The message is the last attempt's error message.

    Context should include:
        - source: Dataset source name
        - attempts: Number of attempts made
        - snapshot_id: The snapshot row marked failed
    """
    pass
