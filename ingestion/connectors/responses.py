"""
Helpers shared by the HTTP-backed connectors
"""

from typing import Any, Dict

import httpx

from core.exceptions import (
    UpstreamAuthError,
    UpstreamFetchError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
)


def http_status_error(
    response: httpx.Response,
    message: str,
    context: Dict[str, Any]
) -> UpstreamFetchError:
    """Map a non-2xx response to the matching upstream error"""
    status_code = response.status_code
    context = {**context, "status_code": status_code}
    message = f"{message}: {status_code} {response.reason_phrase}"

    if status_code in (401, 403):
        return UpstreamAuthError(message, context=context)
    if status_code == 404:
        return UpstreamNotFoundError(message, context=context)
    if status_code == 429:
        retry_after = response.headers.get("Retry-After")
        return UpstreamRateLimitError(
            message,
            context=context,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
        )
    return UpstreamFetchError(message, context=context)


def dig(body: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a key is missing"""
    current = body
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
