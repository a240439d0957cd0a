#!/usr/bin/env python3
"""HTTP Client for the Jira CSV export.

Downloads the issue export that Jira serves as a file attachment. The
export URL is usually a saved filter ("Export > CSV (all fields)") and is
authenticated with a browser session cookie.

    - Session cookie forwarded as a Cookie header
    - Connection pooling via aiohttp session
    - Non-2xx responses and network failures mapped to the typed
      exception hierarchy, so the RetryManager can decide what to retry

Usage:
    async with JiraCsvClient(url, cookie=cookie) as client:
        csv_text = await client.fetch_csv()
"""
import asyncio
import logging
from typing import Optional

import aiohttp

from .exceptions import (
    ConfigurationError,
    FatalError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    TransientError,
    WbsSyncError,
)

logger = logging.getLogger(__name__)

# Characters of an error body kept in exception details
ERROR_BODY_PREVIEW = 200


class JiraCsvClient:
    """Async HTTP client for a Jira CSV export URL.

    Attributes:
        url: Full export URL
        cookie: Raw Cookie header value (may be empty for public filters)
    """

    def __init__(
        self,
        url: str,
        cookie: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """Initialize the client.

        Args:
            url: Jira CSV export URL
            cookie: Session cookie string sent as-is
            timeout: Total request timeout in seconds

        Raises:
            ConfigurationError: If url is empty
        """
        if not url:
            raise ConfigurationError(
                "Jira CSV export URL is required. Set the CSV_URL environment variable.",
                missing_keys=["CSV_URL"],
            )

        self.url = url
        self.cookie = cookie or ""
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "JiraCsvClient":
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Requests
    # ----------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/csv, */*"}
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    async def fetch_csv(self) -> str:
        """Download the export body as text.

        Returns:
            CSV text (never empty)

        Raises:
            RuntimeError: If called outside of async context manager
            TransientError: On 5xx responses, timeouts or connection failures
            FatalError: On other non-2xx responses or an empty body
        """
        if not self._session:
            raise RuntimeError(
                "JiraCsvClient must be used as async context manager: "
                "async with JiraCsvClient(...) as client:"
            )

        try:
            async with self._session.get(self.url, headers=self._headers()) as response:
                body = await response.text()
                if response.status >= 400:
                    raise self._create_error(response.status, body)

        except aiohttp.ClientConnectionError as e:
            raise TransientError(
                f"Failed to connect to Jira: {e}",
                details={"url": self.url},
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TransientError(
                f"Jira CSV download timed out after {self.timeout}s",
                details={"url": self.url},
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise TransientError(f"Network error during Jira CSV download: {e}", cause=e)

        if not body.strip():
            raise FatalError("Jira CSV export is empty", details={"url": self.url})

        logger.info(f"Downloaded Jira CSV export ({len(body)} bytes)")
        return body

    def _create_error(self, status: int, body: str) -> WbsSyncError:
        """Create the typed exception matching a failed response."""
        preview = body[:ERROR_BODY_PREVIEW]

        if status == 404:
            return NotFoundError("Jira CSV export", self.url)

        if status == 429:
            if "quota" in body.lower():
                return QuotaExceededError(f"Jira quota exceeded: {preview}")
            return RateLimitError(f"Jira rate limit exceeded: {preview}")

        if status >= 500:
            return TransientError(
                f"Jira server error ({status})",
                status=status,
                details={"body": preview},
            )

        return FatalError(
            f"Download failed {status}: {preview}",
            status=status,
        )


__all__ = ["JiraCsvClient"]
