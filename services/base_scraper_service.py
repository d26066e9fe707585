from __future__ import annotations

import asyncio
import random
from typing import Dict, Optional, Sequence

import httpx

from app.core.logging import get_logger

logger = get_logger()

BROWSER_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
)


def pick_user_agent(pool: Sequence[str] = BROWSER_USER_AGENTS) -> str:
    return random.choice(tuple(pool))


class BaseScraperService:
    """
    Shared base class for the product-page and RSS scrapers.

    Owns the httpx client and the browser-like request headers. Each request
    draws a user agent from a small fixed pool. Retries default to 0: the
    ingest driver decides what to do with a failed item.
    """

    def __init__(
        self,
        *,
        user_agents: Sequence[str] = BROWSER_USER_AGENTS,
        extra_headers: Optional[Dict[str, str]] = None,
        timeout_s: int = 15,
        max_retries: int = 0,
    ) -> None:
        """
        Args:
            user_agents: Pool the per-request User-Agent is drawn from
            extra_headers: Headers sent with every request
            timeout_s: Request timeout in seconds
            max_retries: Retry attempts for failed requests (exponential delay)
        """
        if not user_agents:
            raise ValueError("user_agents cannot be empty")
        self.user_agents = tuple(user_agents)
        self.extra_headers = dict(extra_headers or {})
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "BaseScraperService":
        self._client = httpx.AsyncClient(
            timeout=self.timeout_s,
            headers=self.extra_headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_headers(self) -> Dict[str, str]:
        return {"User-Agent": pick_user_agent(self.user_agents)}

    async def fetch(self, url: str) -> httpx.Response:
        """
        Fetch URL, raising httpx.HTTPError for network errors and non-2xx
        responses once retries are exhausted.
        """
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")

        attempt = 0
        delay = 1.0
        last_exc: Optional[Exception] = None

        while attempt <= self.max_retries:
            try:
                response = await self._client.get(url, headers=self.build_headers())
                response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                last_exc = exc
                attempt += 1
                if attempt > self.max_retries:
                    break
                await asyncio.sleep(delay)
                delay = min(delay * 2, 10)

        assert last_exc is not None
        raise last_exc

    async def fetch_text(self, url: str) -> str:
        response = await self.fetch(url)
        return response.text
