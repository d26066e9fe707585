# app/models/content.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =========================
# Enums
# =========================

class ArticleType(str, Enum):
    REVIEW = "review"
    GUIDE = "guide"
    COMPARATIF = "comparatif"
    TOP = "top"


class ArticleCategory(str, Enum):
    REVIEWS = "reviews"
    GUIDES = "guides"
    COMPARATIFS = "comparatifs"
    TOPS = "tops"


class ArticleTone(str, Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    ENTHUSIASTIC = "enthusiastic"


class NewsCategory(str, Enum):
    ECONOMIE = "economie"
    JURIDIQUE = "juridique"
    TENDANCES = "tendances"
    TECH = "tech"
    LIFESTYLE = "lifestyle"
    CREATEURS = "createurs"


DEFAULT_NEWS_CATEGORY = NewsCategory.TECH

_CATEGORY_BY_TYPE = {
    ArticleType.REVIEW: ArticleCategory.REVIEWS,
    ArticleType.GUIDE: ArticleCategory.GUIDES,
    ArticleType.COMPARATIF: ArticleCategory.COMPARATIFS,
    ArticleType.TOP: ArticleCategory.TOPS,
}


def category_for_article_type(article_type: ArticleType) -> ArticleCategory:
    return _CATEGORY_BY_TYPE[ArticleType(article_type)]


def parse_article_type(value: Any) -> ArticleType:
    """
    Single entry point for untrusted article types (API bodies, CLI args).
    Raises ValueError for anything outside the four known types.
    """
    if isinstance(value, ArticleType):
        return value
    raw = str(value or "").strip().lower()
    try:
        return ArticleType(raw)
    except ValueError:
        allowed = ", ".join(t.value for t in ArticleType)
        raise ValueError(f"invalid article type {value!r}; expected one of: {allowed}") from None


def coerce_news_category(value: Any) -> NewsCategory:
    """Oracle output is untrusted: anything unknown becomes the default category."""
    if isinstance(value, NewsCategory):
        return value
    if not isinstance(value, str):
        return DEFAULT_NEWS_CATEGORY
    try:
        return NewsCategory(value.strip().lower())
    except ValueError:
        return DEFAULT_NEWS_CATEGORY


# =========================
# Tenant
# =========================

class Blog(BaseModel):
    id: str
    name: str
    niche: str
    slug: Optional[str] = None
    amazon_affiliate_id: Optional[str] = None
    is_active: bool = True


# =========================
# Scraped inputs
# =========================

UNKNOWN_AVAILABILITY = "Disponibilité inconnue"


class ScrapedProduct(BaseModel):
    """One Amazon product page, as extracted. Never persisted as-is."""

    model_config = ConfigDict(frozen=True)

    asin: str
    title: str
    price: Optional[Decimal] = None
    currency: str = "EUR"
    images: List[str] = Field(default_factory=list)
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None
    features: List[str] = Field(default_factory=list)
    description: str = ""
    availability: str = UNKNOWN_AVAILABILITY


class StoredProduct(BaseModel):
    id: str
    blog_id: str
    product_id: str  # ASIN
    title: str
    price: Optional[Decimal] = None
    currency: str = "EUR"
    images: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None


class ScrapedNewsItem(BaseModel):
    """
    One Google News RSS item. `url` is the natural key used for dedup;
    `published_at` is the raw pubDate string, parsed only for sorting.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    source: str = ""
    snippet: str = ""
    published_at: Optional[str] = None
    published_ts: Optional[datetime] = None


# =========================
# Generated outputs
# =========================

class GeneratedArticle(BaseModel):
    title: str
    slug: str
    excerpt: str
    content: str
    seo_title: str
    seo_description: str
    category: ArticleCategory
    tags: List[str] = Field(default_factory=list)
    # Estimate only: ceil(words / 200) over the tag-stripped content.
    reading_time: int = 1


class GeneratedNewsSummary(BaseModel):
    title: str
    slug: str
    summary: str
    category: NewsCategory = DEFAULT_NEWS_CATEGORY
    tags: List[str] = Field(default_factory=list, max_length=5)
    image_keyword: str = "gadget"


class NewsSkip(BaseModel):
    """The oracle judged the item irrelevant for the blog's audience."""

    title: str
    url: str
    reason: str = "not relevant for this niche"
