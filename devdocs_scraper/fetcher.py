"""Async HTTP transport for manifests and documentation pages.

The fetcher does not retry; callers decide what is worth retrying based on
the error type it raises.
"""

import json
import logging
from typing import Any, Optional

import httpx

from .config import ScraperConfig
from .errors import FetchTimeout, HttpStatusError, NetworkFailure

logger = logging.getLogger("devdocs_scraper")


class Fetcher:
    def __init__(self, config: ScraperConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, connect=min(self.config.timeout, 30)),
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def fetch(self, url: str, timeout: Optional[float] = None) -> bytes:
        """GET url and return the raw body. Raises a FetchError subclass on failure."""
        timeout = self.config.timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        try:
            resp = await self.client.get(url, timeout=timeout)
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchTimeout(url, f"Timed out after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise HttpStatusError(url, e.response.status_code) from e
        except httpx.TransportError as e:
            raise NetworkFailure(url, f"{type(e).__name__}: {e}") from e

        logger.debug(f"GET {url} -> {resp.status_code} ({len(resp.content):,} bytes)")
        return resp.content

    async def fetch_json(self, url: str, timeout: Optional[float] = None) -> Any:
        """GET url and decode it as JSON. Raises ValueError on a malformed body."""
        body = await self.fetch(url, timeout)
        return json.loads(body)
