# tests/fixtures/__init__.py
"""
Test fixtures for the ingestion pipeline.

Factory functions:
- make_blog()
- make_stored_product()
- make_scraped_product()
- make_news_item()

In-memory collaborators:
- FakeStore (ContentStore surface, unique constraints included)
- FakeOracle (scripted TextOracle)
- FakeProductScraper / FakeNewsScraper / FakeImageSearch
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from uuid import uuid4

from app.models.content import (
    Blog,
    GeneratedArticle,
    GeneratedNewsSummary,
    ScrapedNewsItem,
    ScrapedProduct,
    StoredProduct,
)
from services.content_store import DuplicateRecordError


def make_blog(
    blog_id: Optional[str] = None,
    name: str = "Tech Gadgets",
    niche: str = "tech",
    amazon_affiliate_id: Optional[str] = "techgadgets-21",
    is_active: bool = True,
) -> Blog:
    return Blog(
        id=blog_id or str(uuid4()),
        name=name,
        niche=niche,
        slug=name.lower().replace(" ", "-"),
        amazon_affiliate_id=amazon_affiliate_id,
        is_active=is_active,
    )


def make_stored_product(
    blog_id: str,
    asin: str = "B084TSLMC6",
    title: str = "Echo Dot (4e génération)",
    features: Optional[List[str]] = None,
    product_id: Optional[str] = None,
) -> StoredProduct:
    return StoredProduct(
        id=product_id or str(uuid4()),
        blog_id=blog_id,
        product_id=asin,
        title=title,
        price=Decimal("59.99"),
        rating=Decimal("4.7"),
        review_count=1234,
        features=features if features is not None else ["Son riche", "Alexa intégrée", "Design compact", "Wi-Fi"],
    )


def make_scraped_product(asin: str = "B084TSLMC6", title: str = "Echo Dot (4e génération)") -> ScrapedProduct:
    return ScrapedProduct(
        asin=asin,
        title=title,
        price=Decimal("59.99"),
        images=[f"https://m.media-amazon.com/images/I/{asin}.jpg"],
        rating=Decimal("4.7"),
        review_count=1234,
        features=["Son riche et clair", "Alexa intégrée"],
        description="Enceinte connectée.",
    )


def make_news_item(
    n: int = 1,
    url: Optional[str] = None,
    published_at: Optional[str] = "Mon, 06 Jan 2025 10:00:00 GMT",
) -> ScrapedNewsItem:
    return ScrapedNewsItem(
        title=f"Nouveau smartphone {n} annoncé",
        url=url or f"https://news.example.com/article-{n}",
        source="Example News",
        snippet=f"Le fabricant dévoile le modèle {n}.",
        published_at=published_at,
    )


class FakeStore:
    """In-memory ContentStore. Enforces the same per-blog unique keys as the schema."""

    def __init__(self, blogs: Sequence[Blog] = ()):
        self.blogs: Dict[str, Blog] = {b.id: b for b in blogs}
        self.products: List[StoredProduct] = []
        self.articles: List[Dict[str, Any]] = []
        self.news: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, Any]] = []

    async def get_blog(self, blog_id: str) -> Optional[Blog]:
        return self.blogs.get(blog_id)

    async def list_active_blogs(self) -> List[Blog]:
        return [b for b in self.blogs.values() if b.is_active]

    async def get_product(self, blog_id: str, product_id: str) -> Optional[StoredProduct]:
        for p in self.products:
            if p.blog_id == blog_id and p.id == product_id:
                return p
        return None

    async def get_products(self, blog_id: str, ids: Sequence[str]) -> List[StoredProduct]:
        found = [await self.get_product(blog_id, i) for i in ids]
        return [p for p in found if p is not None]

    async def get_product_by_asin(self, blog_id: str, asin: str) -> Optional[StoredProduct]:
        self.calls.append(("get_product_by_asin", asin))
        for p in self.products:
            if p.blog_id == blog_id and p.product_id == asin:
                return p
        return None

    async def product_exists(self, blog_id: str, asin: str) -> bool:
        return await self.get_product_by_asin(blog_id, asin) is not None

    async def list_products(self, blog_id: str) -> List[StoredProduct]:
        return [p for p in self.products if p.blog_id == blog_id]

    async def insert_product(self, blog_id: str, product: ScrapedProduct) -> StoredProduct:
        if any(p.blog_id == blog_id and p.product_id == product.asin for p in self.products):
            raise DuplicateRecordError("products", product.asin)
        stored = StoredProduct(
            id=str(uuid4()),
            blog_id=blog_id,
            product_id=product.asin,
            title=product.title,
            price=product.price,
            images=list(product.images),
            features=list(product.features),
            description=product.description,
            rating=product.rating,
            review_count=product.review_count,
        )
        self.products.append(stored)
        return stored

    async def article_slug_exists(self, blog_id: str, slug: str) -> bool:
        return any(a["blog_id"] == blog_id and a["slug"] == slug for a in self.articles)

    async def insert_article(
        self,
        blog_id: str,
        article: GeneratedArticle,
        *,
        product_ids: Sequence[str] = (),
        publish: bool = False,
    ) -> Dict[str, Any]:
        if await self.article_slug_exists(blog_id, article.slug):
            raise DuplicateRecordError("articles", article.slug)
        row = {
            "id": str(uuid4()),
            "blog_id": blog_id,
            "title": article.title,
            "slug": article.slug,
            "category": article.category.value,
            "status": "published" if publish else "draft",
            "reading_time": article.reading_time,
            "product_ids": list(product_ids),
        }
        self.articles.append(row)
        return row

    async def news_exists(self, blog_id: str, source_url: str) -> bool:
        self.calls.append(("news_exists", source_url))
        return any(n["blog_id"] == blog_id and n["source_url"] == source_url for n in self.news)

    async def insert_news(
        self,
        blog_id: str,
        item: ScrapedNewsItem,
        summary: GeneratedNewsSummary,
        *,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        if await self.news_exists(blog_id, item.url):
            raise DuplicateRecordError("news", item.url)
        row = {
            "id": str(uuid4()),
            "blog_id": blog_id,
            "title": summary.title,
            "slug": summary.slug,
            "category": summary.category.value,
            "source_url": item.url,
            "featured_image": image_url,
            "created_at": datetime.now(timezone.utc),
        }
        self.news.append(row)
        return row

    async def list_news(self, blog_id: str, limit: int = 20, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        rows = [n for n in self.news if n["blog_id"] == blog_id]
        return rows[offset : offset + limit], len(rows)


OracleReply = Union[str, Exception, Callable[[str, str], str]]


class FakeOracle:
    """
    Scripted TextOracle: replies are consumed in order. An Exception reply is
    raised; a callable reply receives (system_prompt, user_prompt).
    """

    def __init__(self, replies: Sequence[OracleReply] = (), default: Optional[OracleReply] = None):
        self.replies: List[OracleReply] = list(replies)
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        self.calls.append(
            {
                "system": system_prompt,
                "user": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        reply = self.replies.pop(0) if self.replies else self.default
        if reply is None:
            raise AssertionError("FakeOracle ran out of replies")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt)
        return reply


class _AsyncContext:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeProductScraper(_AsyncContext):
    def __init__(self, products: Optional[Dict[str, Optional[ScrapedProduct]]] = None):
        self.products = products or {}
        self.requested: List[str] = []

    async def scrape_product(self, asin: str) -> Optional[ScrapedProduct]:
        self.requested.append(asin)
        return self.products.get(asin)


class FakeNewsScraper(_AsyncContext):
    def __init__(self, items: Sequence[ScrapedNewsItem] = ()):
        self.items = list(items)
        self.requests: List[Dict[str, Any]] = []

    async def fetch_news_for_niche(
        self,
        niche: str,
        *,
        keywords: Optional[Sequence[str]] = None,
        max_results: int = 10,
    ) -> List[ScrapedNewsItem]:
        self.requests.append({"niche": niche, "keywords": keywords, "max_results": max_results})
        return self.items[:max_results]


class FakeImageSearch:
    def __init__(self, url: Optional[str] = "https://images.unsplash.com/photo-1"):
        self.url = url
        self.keywords: List[str] = []

    async def search_image(self, keyword: str) -> Optional[str]:
        self.keywords.append(keyword)
        return self.url
