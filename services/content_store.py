# services/content_store.py
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncpg

from app.core.logging import get_logger
from app.models.content import (
    Blog,
    GeneratedArticle,
    GeneratedNewsSummary,
    ScrapedNewsItem,
    ScrapedProduct,
    StoredProduct,
)
from services.db_service import run_query
from services.rss_normalization import extract_domain, published_datetime

logger = get_logger().bind(module="content_store")

PARTNER_AMAZON = "amazon"

_BLOG_SELECT = """
    SELECT b.id, b.name, b.slug, b.niche, b.is_active, a.affiliate_id AS amazon_affiliate_id
    FROM blogs b
    LEFT JOIN blog_affiliate_ids a
      ON a.blog_id = b.id AND a.partner_id = 'amazon' AND a.is_primary
"""

_PRODUCT_COLUMNS = """
    id, blog_id, product_id, title, price, currency, images, features,
    description, rating, review_count
"""


class DuplicateRecordError(Exception):
    """A unique constraint rejected the insert (the record already exists)."""

    def __init__(self, table: str, key: str):
        super().__init__(f"{table} record already exists: {key}")
        self.table = table
        self.key = key


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _record_to_dict(record: Any) -> Dict[str, Any]:
    data = dict(record)
    for key, value in data.items():
        if isinstance(value, uuid.UUID):
            data[key] = str(value)
        elif isinstance(value, list):
            data[key] = [str(v) if isinstance(v, uuid.UUID) else v for v in value]
    return data


def _to_blog(record: Any) -> Blog:
    return Blog(**_record_to_dict(record))


def _to_product(record: Any) -> StoredProduct:
    data = _record_to_dict(record)
    data["images"] = data.get("images") or []
    data["features"] = data.get("features") or []
    return StoredProduct(**data)


class ContentStore:
    """
    Tenant-partitioned persistence for blogs, products, articles and news.
    Every read and write takes blog_id; nothing crosses tenants.
    """

    def __init__(self, pool: Any):
        self.pool = pool

    async def _fetch(self, query: str, *args: Any) -> List[Any]:
        return await run_query(self.pool, "fetch", query, *args)

    async def _fetchrow(self, query: str, *args: Any) -> Optional[Any]:
        return await run_query(self.pool, "fetchrow", query, *args)

    async def _fetchval(self, query: str, *args: Any) -> Any:
        return await run_query(self.pool, "fetchval", query, *args)

    # ---- blogs ----

    async def get_blog(self, blog_id: str) -> Optional[Blog]:
        blog_uuid = _as_uuid(blog_id)
        if blog_uuid is None:
            return None
        row = await self._fetchrow(_BLOG_SELECT + " WHERE b.id = $1", blog_uuid)
        return _to_blog(row) if row else None

    async def list_active_blogs(self) -> List[Blog]:
        rows = await self._fetch(_BLOG_SELECT + " WHERE b.is_active ORDER BY b.created_at")
        return [_to_blog(r) for r in rows]

    # ---- products ----

    async def get_product(self, blog_id: str, product_id: str) -> Optional[StoredProduct]:
        blog_uuid, product_uuid = _as_uuid(blog_id), _as_uuid(product_id)
        if blog_uuid is None or product_uuid is None:
            return None
        row = await self._fetchrow(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE blog_id = $1 AND id = $2",
            blog_uuid,
            product_uuid,
        )
        return _to_product(row) if row else None

    async def get_products(self, blog_id: str, ids: Sequence[str]) -> List[StoredProduct]:
        """Products of this blog matching ids, in the order the ids were given."""
        blog_uuid = _as_uuid(blog_id)
        wanted = [u for u in (_as_uuid(i) for i in ids) if u is not None]
        if blog_uuid is None or not wanted:
            return []
        rows = await self._fetch(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE blog_id = $1 AND id = ANY($2::uuid[])",
            blog_uuid,
            wanted,
        )
        by_id = {p.id: p for p in (_to_product(r) for r in rows)}
        return [by_id[str(u)] for u in wanted if str(u) in by_id]

    async def get_product_by_asin(self, blog_id: str, asin: str) -> Optional[StoredProduct]:
        blog_uuid = _as_uuid(blog_id)
        if blog_uuid is None:
            return None
        row = await self._fetchrow(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE blog_id = $1 AND product_id = $2",
            blog_uuid,
            asin,
        )
        return _to_product(row) if row else None

    async def product_exists(self, blog_id: str, asin: str) -> bool:
        return await self.get_product_by_asin(blog_id, asin) is not None

    async def list_products(self, blog_id: str) -> List[StoredProduct]:
        rows = await self._fetch(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE blog_id = $1 ORDER BY created_at DESC",
            _as_uuid(blog_id),
        )
        return [_to_product(r) for r in rows]

    async def insert_product(self, blog_id: str, product: ScrapedProduct) -> StoredProduct:
        try:
            row = await self._fetchrow(
                f"""
                INSERT INTO products (
                    blog_id, partner_id, product_id, title, price, currency, images,
                    features, description, rating, review_count, availability, scraped_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, now())
                RETURNING {_PRODUCT_COLUMNS}
                """,
                _as_uuid(blog_id),
                PARTNER_AMAZON,
                product.asin,
                product.title,
                product.price,
                product.currency,
                list(product.images),
                list(product.features),
                product.description,
                product.rating,
                product.review_count,
                product.availability,
            )
        except asyncpg.UniqueViolationError as exc:
            raise DuplicateRecordError("products", product.asin) from exc
        logger.info("product_inserted", blog_id=blog_id, asin=product.asin)
        return _to_product(row)

    # ---- articles ----

    async def article_slug_exists(self, blog_id: str, slug: str) -> bool:
        found = await self._fetchval(
            "SELECT 1 FROM articles WHERE blog_id = $1 AND slug = $2",
            _as_uuid(blog_id),
            slug,
        )
        return found is not None

    async def insert_article(
        self,
        blog_id: str,
        article: GeneratedArticle,
        *,
        product_ids: Sequence[str] = (),
        publish: bool = False,
    ) -> Dict[str, Any]:
        status = "published" if publish else "draft"
        try:
            row = await self._fetchrow(
                """
                INSERT INTO articles (
                    blog_id, title, slug, excerpt, content, category, tags, status,
                    published_at, seo_title, seo_description, reading_time, product_ids
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8,
                        CASE WHEN $8 = 'published' THEN now() END,
                        $9, $10, $11, $12::uuid[])
                RETURNING id, blog_id, title, slug, category, status, reading_time, created_at
                """,
                _as_uuid(blog_id),
                article.title,
                article.slug,
                article.excerpt,
                article.content,
                article.category.value,
                list(article.tags),
                status,
                article.seo_title,
                article.seo_description,
                article.reading_time,
                [u for u in (_as_uuid(p) for p in product_ids) if u is not None],
            )
        except asyncpg.UniqueViolationError as exc:
            raise DuplicateRecordError("articles", article.slug) from exc
        logger.info("article_inserted", blog_id=blog_id, slug=article.slug, status=status)
        return _record_to_dict(row)

    # ---- news ----

    async def news_exists(self, blog_id: str, source_url: str) -> bool:
        found = await self._fetchval(
            "SELECT 1 FROM news WHERE blog_id = $1 AND source_url = $2",
            _as_uuid(blog_id),
            source_url,
        )
        return found is not None

    async def insert_news(
        self,
        blog_id: str,
        item: ScrapedNewsItem,
        summary: GeneratedNewsSummary,
        *,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            row = await self._fetchrow(
                """
                INSERT INTO news (
                    blog_id, title, slug, summary, source_title, source_url, source_domain,
                    source_published_at, category, tags, featured_image, is_published
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, TRUE)
                RETURNING id, blog_id, title, slug, category, source_url, featured_image, created_at
                """,
                _as_uuid(blog_id),
                summary.title,
                summary.slug,
                summary.summary,
                item.title,
                item.url,
                extract_domain(item.url) or item.source or None,
                published_datetime(item),
                summary.category.value,
                list(summary.tags),
                image_url,
            )
        except asyncpg.UniqueViolationError as exc:
            raise DuplicateRecordError("news", item.url) from exc
        logger.info("news_inserted", blog_id=blog_id, slug=summary.slug, url=item.url)
        return _record_to_dict(row)

    async def list_news(self, blog_id: str, limit: int = 20, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        blog_uuid = _as_uuid(blog_id)
        if blog_uuid is None:
            return [], 0
        rows = await self._fetch(
            """
            SELECT id, blog_id, title, slug, summary, source_title, source_url, source_domain,
                   source_published_at, category, tags, featured_image, is_published, created_at
            FROM news
            WHERE blog_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            blog_uuid,
            limit,
            offset,
        )
        total = await self._fetchval("SELECT count(*) FROM news WHERE blog_id = $1", blog_uuid)
        return [_record_to_dict(r) for r in rows], int(total or 0)
