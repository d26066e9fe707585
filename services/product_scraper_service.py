# services/product_scraper_service.py
"""
Amazon product-page scraper.

`parse_product_html` is pure: given the fetched page and the ASIN it returns
a ScrapedProduct, or None when no title can be located (the only hard
failure). Every other field is optional and degrades to absent/empty.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

import httpx
from bs4 import BeautifulSoup, Tag

from app.config import settings
from app.core.logging import get_logger
from app.models.content import UNKNOWN_AVAILABILITY, ScrapedProduct
from services.base_scraper_service import BaseScraperService
from services.text_utils import collapse_whitespace

logger = get_logger().bind(module="product_scraper_service")

MAX_IMAGES = 5
MAX_FEATURES = 10
MAX_DESCRIPTION_CHARS = 1000
MAX_APLUS_CHARS = 500
MAX_TITLE_CHARS = 500
MIN_FEATURE_CHARS = 6

_ASIN_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"asin=([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"^([A-Z0-9]{10})$", re.IGNORECASE),
)
_BARE_ASIN_RE = re.compile(r"^[A-Z0-9]{10}$")

_TITLE_SELECTORS = ("#productTitle", "#title", "h1.a-size-large")
_GALLERY_SELECTOR = "#altImages img, #imageBlock img"
_LANDING_SELECTORS = ("#landingImage", "#imgBlkFront")
_SIZE_MODIFIER_RE = re.compile(r"\._[^/]*?_\.")
_DECIMAL_RE = re.compile(r"(\d+[.,]\d+)")
_COUNT_RE = re.compile(r"(\d[\d\s.,\u00a0\u202f]*)")
_FEATURE_BOILERPLATE = (
    "cliquez",
    "voir plus",
    "see more product details",
    "make sure this fits",
)

AMAZON_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


# -------- External id ---------------------------------------------------------

def extract_asin(value: str) -> Optional[str]:
    """
    Pull the 10-char ASIN out of a raw id or an Amazon URL.
    Patterns are tried in a fixed order; the result is always upper-case.
    """
    if not value:
        return None
    candidate = value.strip()
    for pattern in _ASIN_PATTERNS:
        m = pattern.search(candidate)
        if m:
            return m.group(1).upper()
    return None


def is_valid_asin(value: str) -> bool:
    return bool(value) and bool(_BARE_ASIN_RE.match(value))


def product_url(asin: str, domain: Optional[str] = None) -> str:
    return f"https://{domain or settings.AMAZON_DOMAIN}/dp/{asin}"


# -------- Field parsers -------------------------------------------------------

def _text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return collapse_whitespace(node.get_text(" "))


def _first_text(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    for selector in selectors:
        value = _text(soup.select_one(selector))
        if value:
            return value
    return ""


def _digits(value: str) -> str:
    return re.sub(r"[^\d]", "", value or "")


def _parse_price(soup: BeautifulSoup) -> Optional[Decimal]:
    whole = _digits(_text(soup.select_one(".a-price-whole")))
    if not whole:
        return None
    fraction = _digits(_text(soup.select_one(".a-price-fraction"))) or "00"
    try:
        return Decimal(f"{whole}.{fraction}")
    except InvalidOperation:
        return None


def parse_locale_decimal(value: str) -> Optional[Decimal]:
    """'4,5 sur 5 étoiles' -> Decimal('4.5')."""
    m = _DECIMAL_RE.search(value or "")
    if not m:
        return None
    try:
        return Decimal(m.group(1).replace(",", "."))
    except InvalidOperation:
        return None


def parse_grouped_int(value: str) -> Optional[int]:
    """'12 345 évaluations' / '1.234 ratings' -> 12345 / 1234."""
    m = _COUNT_RE.search(value or "")
    if not m:
        return None
    digits = _digits(m.group(1))
    return int(digits) if digits else None


def _parse_rating(soup: BeautifulSoup) -> Optional[Decimal]:
    popover = soup.select_one("#acrPopover")
    text = ""
    if popover is not None:
        text = str(popover.get("title") or "").strip()
    if not text:
        text = _text(soup.select_one(".a-icon-star span"))
    rating = parse_locale_decimal(text)
    if rating is None or rating < 0 or rating > 5:
        return None
    return rating


def _parse_review_count(soup: BeautifulSoup) -> Optional[int]:
    text = _first_text(soup, ("#acrCustomerReviewText", "#reviewsMedley .a-size-base"))
    return parse_grouped_int(text)


def high_res_image_url(src: str) -> str:
    """Drop the size modifier: .../I/71abc._AC_US40_.jpg -> .../I/71abc.jpg"""
    return _SIZE_MODIFIER_RE.sub(".", src, count=1)


def _parse_images(soup: BeautifulSoup) -> List[str]:
    images: List[str] = []
    for img in soup.select(_GALLERY_SELECTOR):
        src = str(img.get("src") or img.get("data-old-hires") or "").strip()
        if not src or "images" not in src or "sprite" in src:
            continue
        high_res = high_res_image_url(src)
        if high_res not in images:
            images.append(high_res)

    for selector in _LANDING_SELECTORS:
        landing = soup.select_one(selector)
        if landing is None:
            continue
        main = str(landing.get("data-old-hires") or landing.get("src") or "").strip()
        if main and not main.startswith("data:"):
            if main not in images:
                images.insert(0, main)
            break

    return images[:MAX_IMAGES]


def _is_boilerplate(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _FEATURE_BOILERPLATE)


def _parse_features(soup: BeautifulSoup) -> List[str]:
    features: List[str] = []
    for node in soup.select("#feature-bullets li span.a-list-item"):
        text = _text(node)
        if len(text) < MIN_FEATURE_CHARS or _is_boilerplate(text):
            continue
        features.append(text)
        if len(features) >= MAX_FEATURES:
            break
    return features


def _parse_description(soup: BeautifulSoup) -> str:
    paragraphs = [_text(p) for p in soup.select("#productDescription p")]
    description = "\n".join(p for p in paragraphs if p)
    if not description:
        description = _text(soup.select_one("#aplus_feature_div"))[:MAX_APLUS_CHARS]
    return description.strip()[:MAX_DESCRIPTION_CHARS]


def _parse_availability(soup: BeautifulSoup) -> str:
    return _first_text(soup, ("#availability span", "#outOfStock span")) or UNKNOWN_AVAILABILITY


def parse_product_html(html: str, asin: str) -> Optional[ScrapedProduct]:
    soup = BeautifulSoup(html or "", "html.parser")

    title = _first_text(soup, _TITLE_SELECTORS)[:MAX_TITLE_CHARS]
    if not title:
        logger.warning("product_title_not_found", asin=asin)
        return None

    return ScrapedProduct(
        asin=asin.strip().upper(),
        title=title,
        price=_parse_price(soup),
        images=_parse_images(soup),
        rating=_parse_rating(soup),
        review_count=_parse_review_count(soup),
        features=_parse_features(soup),
        description=_parse_description(soup),
        availability=_parse_availability(soup)[:200],
    )


# -------- Fetching ------------------------------------------------------------

class ProductScraperService(BaseScraperService):
    """Fetches one product page per call. No retries: the caller paces and reports."""

    def __init__(self, *, domain: Optional[str] = None, timeout_s: Optional[int] = None) -> None:
        super().__init__(
            extra_headers=AMAZON_HEADERS,
            timeout_s=timeout_s or settings.SCRAPER_TIMEOUT_S,
            max_retries=0,
        )
        self.domain = domain or settings.AMAZON_DOMAIN

    async def scrape_product(self, asin: str) -> Optional[ScrapedProduct]:
        url = product_url(asin, self.domain)
        try:
            html = await self.fetch_text(url)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "product_fetch_bad_status",
                asin=asin,
                url=url,
                status_code=exc.response.status_code,
            )
            return None
        except httpx.HTTPError as exc:
            logger.warning("product_fetch_failed", asin=asin, url=url, error=str(exc))
            return None

        product = parse_product_html(html, asin)
        if product is not None:
            logger.info(
                "product_scraped",
                asin=product.asin,
                images=len(product.images),
                features=len(product.features),
                has_price=product.price is not None,
            )
        return product
