from __future__ import annotations

import random
from typing import Optional

import httpx

from app.config import settings
from app.core.logging import get_logger

logger = get_logger().bind(module="unsplash_service")

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
_RESULTS_PER_QUERY = 5


class UnsplashService:
    """
    Keyword -> image URL lookup used for news illustrations.
    Without an access key every lookup is a no-op returning None.
    """

    def __init__(self, access_key: Optional[str] = None, *, timeout_s: int = 10) -> None:
        self.access_key = access_key if access_key is not None else settings.UNSPLASH_ACCESS_KEY
        self.timeout_s = timeout_s

    @property
    def enabled(self) -> bool:
        return bool(self.access_key)

    async def search_image(self, keyword: str) -> Optional[str]:
        if not self.enabled or not keyword or not keyword.strip():
            return None

        params = {
            "query": keyword.strip(),
            "per_page": _RESULTS_PER_QUERY,
            "orientation": "landscape",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                response = await client.get(
                    UNSPLASH_SEARCH_URL,
                    params=params,
                    headers={"Authorization": f"Client-ID {self.access_key}"},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("unsplash_search_failed", keyword=keyword, error=str(exc))
            return None

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            return None
        photo = random.choice(results[:_RESULTS_PER_QUERY])
        urls = photo.get("urls") or {}
        return urls.get("regular") or urls.get("small") or None
