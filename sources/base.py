"""
Base HTTP Source - Shared aiohttp plumbing for every monitored endpoint.

Subclasses get:
- One lazily created session with connect/read timeouts
- JSON and text GET helpers that raise FetchError / ParseError
- Async context manager support
"""

import asyncio
import json
import logging
import time
from typing import Any, Optional

import aiohttp

from sources.exceptions import FetchError, ParseError


logger = logging.getLogger(__name__)


class BaseHttpSource:
    """
    Base class for HTTP-backed sources.

    The session may be injected (tests, shared pools); a session created
    here is owned and closed by this object.
    """

    DEFAULT_CONNECT_TIMEOUT = 10.0
    DEFAULT_READ_TIMEOUT = 15.0
    USER_AGENT = "PipelineMonitor/1.0"

    def __init__(
        self,
        name: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._name = name
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        """Identifier used in log lines and errors."""
        return self._name

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    connect=self._connect_timeout,
                    sock_read=self._read_timeout,
                ),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {"User-Agent": self.USER_AGENT}

    async def _request_text(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        accept: str = "*/*",
    ) -> str:
        """GET a URL and return the body as text."""
        session = await self._get_session()
        request_headers = {"Accept": accept}
        if headers:
            request_headers.update(headers)

        start_time = time.time()
        try:
            async with session.get(url, headers=request_headers) as response:
                # Undecodable bytes become U+FFFD; only the affected line or field is lost
                body = await response.text(errors="replace")
                latency_ms = (time.time() - start_time) * 1000

                if response.status >= 400:
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name=self._name,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                logger.debug(f"[{self._name}] GET {url} completed in {latency_ms:.1f}ms")
                return body

        except asyncio.TimeoutError as e:
            raise FetchError(
                message="Request timed out",
                source_name=self._name,
                request_url=url,
                timeout=True,
                original_error=e,
            )
        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name=self._name,
                request_url=url,
                original_error=e,
            )
        except (UnicodeDecodeError, LookupError) as e:
            raise ParseError(
                message=f"Undecodable response body from {url}",
                source_name=self._name,
                original_error=e,
            )

    async def _request_json(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET a URL and decode the body as JSON."""
        body = await self._request_text(url, headers=headers, accept="application/json")
        try:
            return json.loads(body)
        except ValueError as e:
            raise ParseError(
                message=f"Invalid JSON from {url}",
                source_name=self._name,
                raw_data=body,
                original_error=e,
            )

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseHttpSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self._name})>"
