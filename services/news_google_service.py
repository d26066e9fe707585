"""
Google News RSS search for a blog niche.

One RSS request per keyword (first 3 keywords only), merged by URL, sorted
newest first and truncated. Nothing is stored here; dedup against already
published news happens in the ingest driver.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.models.content import ScrapedNewsItem
from services.base_scraper_service import BaseScraperService
from services.rss_normalization import (
    merge_news_items,
    parse_google_news_rss,
    sort_news_by_date,
)

logger = get_logger().bind(module="news_google_service")

MAX_KEYWORD_REQUESTS = 3

_RSS_HEADERS = {"Accept": "application/rss+xml, application/xml, text/xml"}

# Product/test oriented searches per niche.
NICHE_KEYWORDS: Dict[str, List[str]] = {
    "tech": [
        "test smartphone 2025",
        "nouveauté high-tech",
        "meilleur gadget tech",
        "comparatif accessoires",
        "sortie produit tech",
        "promo high-tech",
    ],
    "audio": [
        "test casque audio",
        "nouveauté enceinte bluetooth",
        "comparatif écouteurs",
        "meilleur DAC audiophile",
        "sortie casque sans fil",
    ],
    "gaming": [
        "test console gaming",
        "nouveau jeu vidéo",
        "comparatif manette",
        "meilleur PC gamer",
        "accessoire gaming 2025",
    ],
    "mode": [
        "tendance mode 2025",
        "nouvelle collection",
        "marque streetwear",
        "accessoire mode",
        "sneakers sortie",
    ],
    "maison": [
        "test robot aspirateur",
        "comparatif électroménager",
        "nouveauté domotique",
        "meilleur purificateur air",
        "gadget maison connectée",
    ],
    "sport": [
        "test montre connectée sport",
        "comparatif vélo électrique",
        "meilleur équipement fitness",
        "nouveauté running",
        "accessoire musculation",
    ],
    "photo": [
        "test appareil photo",
        "nouveau smartphone photo",
        "comparatif objectif",
        "meilleur drone caméra",
        "accessoire photographe",
    ],
    "cuisine": [
        "test robot cuisine",
        "comparatif multicuiseur",
        "meilleur blender",
        "nouveauté électroménager",
        "accessoire cuisine pro",
    ],
    "beaute": [
        "test appareil beauté",
        "nouveauté soin visage",
        "comparatif sèche-cheveux",
        "meilleur épilateur",
        "gadget beauté tech",
    ],
    "jardin": [
        "test robot tondeuse",
        "comparatif taille-haie",
        "meilleur arrosage automatique",
        "nouveauté outillage jardin",
        "gadget jardinage",
    ],
}


def search_keywords_for_niche(niche: str, extra_keywords: Optional[Sequence[str]] = None) -> List[str]:
    base = NICHE_KEYWORDS.get((niche or "").strip().lower())
    if base is None:
        base = [f"test {niche}", f"meilleur {niche}", f"comparatif {niche}"]
    return [*base, *(k for k in (extra_keywords or []) if k and k.strip())]


def build_google_news_url(query: str, *, language: str = "fr", region: str = "FR") -> str:
    encoded = quote(query, safe="")
    lang = language.lower()
    region_upper = region.upper()
    return (
        "https://news.google.com/rss/search?"
        f"q={encoded}&hl={lang}&gl={region_upper}&ceid={region_upper}:{lang}"
    )


class GoogleNewsService(BaseScraperService):
    def __init__(
        self,
        *,
        language: Optional[str] = None,
        region: Optional[str] = None,
        request_delay_s: Optional[float] = None,
        timeout_s: Optional[int] = None,
    ) -> None:
        super().__init__(
            extra_headers=_RSS_HEADERS,
            timeout_s=timeout_s or settings.SCRAPER_TIMEOUT_S,
        )
        self.language = language or settings.NEWS_LANGUAGE
        self.region = region or settings.NEWS_REGION
        self.request_delay_s = settings.RSS_DELAY_S if request_delay_s is None else request_delay_s

    async def fetch_keyword(self, keyword: str) -> List[ScrapedNewsItem]:
        """RSS items for one search query; [] when the request fails."""
        url = build_google_news_url(keyword, language=self.language, region=self.region)
        try:
            response = await self.fetch(url)
        except httpx.HTTPError as exc:
            logger.warning("news_google_fetch_failed", keyword=keyword, url=url, error=str(exc))
            return []
        items = parse_google_news_rss(response.content)
        logger.info("news_google_keyword_fetched", keyword=keyword, items=len(items))
        return items

    async def fetch_news_for_niche(
        self,
        niche: str,
        *,
        keywords: Optional[Sequence[str]] = None,
        max_results: int = 10,
    ) -> List[ScrapedNewsItem]:
        search_keywords = search_keywords_for_niche(niche, keywords)[:MAX_KEYWORD_REQUESTS]

        batches: List[List[ScrapedNewsItem]] = []
        for keyword in search_keywords:
            batches.append(await self.fetch_keyword(keyword))
            if self.request_delay_s > 0:
                await asyncio.sleep(self.request_delay_s)

        merged = merge_news_items(batches)
        result = sort_news_by_date(merged)[: max(0, max_results)]
        logger.info(
            "news_google_niche_fetched",
            niche=niche,
            keywords=len(search_keywords),
            merged=len(merged),
            returned=len(result),
        )
        return result
