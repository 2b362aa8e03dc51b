"""
Transport to the remote tracker, and the tracker error taxonomy.

The core issues fully-formed URLs and headers through a Transport and gets
back either parsed JSON (`data`) or an error string. The poller turns error
strings into AuthFailure or TransportFailure.
"""

from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel


AUTH_FAILURE_MARKER = "Authentication failed"


class TrackerError(Exception):
    """Raised when a tracker fetch cannot produce a snapshot."""
    pass


class AuthFailure(TrackerError):
    """HTML-shaped or otherwise unauthorized response. User must fix credentials."""
    pass


class TransportFailure(TrackerError):
    """Network or parse failure. Retried naturally on the next scheduled poll."""
    pass


class TransportResult(BaseModel):
    """Either data or error is set."""

    data: Optional[Any] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Transport(Protocol):
    async def fetch(self, url: str, options: Dict[str, Any]) -> TransportResult:
        ...


def raise_for_error(result: TransportResult) -> Any:
    """Return the payload, or raise the TrackerError matching the error string."""
    if result.ok:
        return result.data
    if AUTH_FAILURE_MARKER in result.error:
        raise AuthFailure(result.error)
    raise TransportFailure(result.error)


class HttpxTransport:
    """
    Default transport over httpx.

    An HTML content type (a login redirect) or a non-OK status is reported
    as an authentication failure; so is a body that is not valid JSON.
    """

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def fetch(self, url: str, options: Dict[str, Any]) -> TransportResult:
        headers = options.get("headers", {})
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Tracker fetch failed for {}: {}", url, e)
            return TransportResult(error=str(e) or type(e).__name__)

        content_type = response.headers.get("content-type", "")
        if "text/html" in content_type:
            logger.error("Tracker returned HTML instead of JSON for {}", url)
            return TransportResult(
                error=f"{AUTH_FAILURE_MARKER}. Please check your TAPD token."
            )

        if not response.is_success:
            logger.error("Tracker returned HTTP {} for {}", response.status_code, url)
            return TransportResult(
                error=f"{AUTH_FAILURE_MARKER}. Server responded with HTTP {response.status_code}."
            )

        try:
            data = response.json()
        except ValueError:
            logger.error("Tracker returned invalid JSON for {}", url)
            return TransportResult(
                error=f"{AUTH_FAILURE_MARKER}. Invalid response from server."
            )

        return TransportResult(data=data)
