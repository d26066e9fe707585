"""
Batch driver for the ingestion pipeline.

Every operation walks its items one at a time: dedup check, scrape or
generate, insert, pause. A failing item is logged and recorded in the
report; it never aborts the rest of the batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.config import settings
from app.core.logging import get_logger
from app.models.content import (
    ArticleTone,
    ArticleType,
    Blog,
    GeneratedNewsSummary,
    NewsSkip,
    ScrapedNewsItem,
    StoredProduct,
    parse_article_type,
)
from app.models.ingest import BlogNewsRun, IngestReport, NewsSweepResult
from services.article_generation_service import ArticleGenerationService, resolve_unique_slug
from services.content_store import ContentStore, DuplicateRecordError
from services.news_generation_service import NewsGenerationService
from services.product_scraper_service import extract_asin, is_valid_asin
from services.text_utils import timestamp_suffix

logger = get_logger().bind(module="ingest_service")

INVALID_ASIN_REASON = "ASIN invalide"
SCRAPE_FAILED_REASON = "Impossible de récupérer le produit"
NEWS_EXISTS_REASON = "already exists"

CRON_SCRAPE_PER_BLOG = 15
CRON_MAX_NEW_PER_BLOG = 5


class BlogNotFoundError(LookupError):
    def __init__(self, blog_id: str):
        super().__init__(f"blog not found: {blog_id}")
        self.blog_id = blog_id


class ProductNotFoundError(LookupError):
    def __init__(self, product_id: str):
        super().__init__(f"product not found: {product_id}")
        self.product_id = product_id


@dataclass
class PacingConfig:
    """Pauses in seconds between consecutive external calls. 0 disables a pause."""

    item_delay_s: float = field(default_factory=lambda: settings.INGEST_ITEM_DELAY_S)
    news_item_delay_s: float = field(default_factory=lambda: settings.NEWS_ITEM_DELAY_S)
    cron_item_delay_s: float = field(default_factory=lambda: settings.CRON_NEWS_ITEM_DELAY_S)
    blog_delay_s: float = field(default_factory=lambda: settings.CRON_BLOG_DELAY_S)
    rss_delay_s: float = field(default_factory=lambda: settings.RSS_DELAY_S)

    @classmethod
    def disabled(cls) -> "PacingConfig":
        return cls(0, 0, 0, 0, 0)


async def _pause(delay_s: float) -> None:
    if delay_s > 0:
        await asyncio.sleep(delay_s)


def _reason(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class IngestService:
    def __init__(
        self,
        store: ContentStore,
        article_generator: ArticleGenerationService,
        news_generator: NewsGenerationService,
        product_scraper_factory: Callable[[], Any],
        news_scraper_factory: Callable[[], Any],
        image_search: Any = None,
        pacing: Optional[PacingConfig] = None,
    ) -> None:
        self.store = store
        self.article_generator = article_generator
        self.news_generator = news_generator
        # One scraper (and HTTP client) per operation; overlapping runs never share one.
        self.product_scraper_factory = product_scraper_factory
        self.news_scraper_factory = news_scraper_factory
        self.image_search = image_search
        self.pacing = pacing or PacingConfig()

    async def _require_blog(self, blog_id: str) -> Blog:
        blog = await self.store.get_blog(blog_id)
        if blog is None:
            raise BlogNotFoundError(blog_id)
        return blog

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def scrape_products(
        self,
        blog_id: str,
        inputs: Sequence[str],
        *,
        delay_s: Optional[float] = None,
    ) -> IngestReport:
        """
        Scrape and store one product per input (ASIN or product URL).
        Re-running on already stored products reports them as succeeded.
        """
        delay = self.pacing.item_delay_s if delay_s is None else delay_s
        report = IngestReport()

        async with self.product_scraper_factory() as scraper:
            for raw in inputs:
                asin = extract_asin(raw) or (raw or "").strip().upper()
                if not is_valid_asin(asin):
                    logger.warning("product_input_invalid", blog_id=blog_id, input=raw)
                    report.add_failure(asin or str(raw), INVALID_ASIN_REASON)
                    continue

                reached_scraper = False
                try:
                    existing = await self.store.get_product_by_asin(blog_id, asin)
                    if existing is not None:
                        logger.info("product_already_stored", blog_id=blog_id, asin=asin)
                        report.add_success(asin, existing)
                        continue

                    reached_scraper = True
                    scraped = await scraper.scrape_product(asin)
                    if scraped is None:
                        logger.warning("product_scrape_failed", blog_id=blog_id, asin=asin)
                        report.add_failure(asin, SCRAPE_FAILED_REASON)
                    else:
                        try:
                            stored = await self.store.insert_product(blog_id, scraped)
                        except DuplicateRecordError:
                            stored = await self.store.get_product_by_asin(blog_id, asin)
                        report.add_success(asin, stored)
                except Exception as exc:
                    logger.exception("product_ingest_error", blog_id=blog_id, asin=asin)
                    report.add_failure(asin, _reason(exc))
                finally:
                    # Every page request is followed by a pause, whatever happened after it.
                    if reached_scraper:
                        await _pause(delay)

        logger.info("products_scrape_done", blog_id=blog_id, **report.counters())
        return report

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    async def _save_article(
        self,
        blog: Blog,
        article_type: ArticleType,
        *,
        subject: Optional[str],
        products: Sequence[StoredProduct],
        keywords: Sequence[str],
        tone: ArticleTone,
        publish: bool,
    ) -> Dict[str, Any]:
        article = await self.article_generator.generate_article(
            blog,
            article_type,
            subject=subject,
            products=products,
            keywords=keywords,
            tone=tone,
        )
        article.slug = await resolve_unique_slug(self.store, blog.id, article.slug)
        product_ids = [p.id for p in products]
        try:
            return await self.store.insert_article(blog.id, article, product_ids=product_ids, publish=publish)
        except DuplicateRecordError:
            # Another run took the slug between the check and the insert.
            article.slug = f"{article.slug}-{timestamp_suffix()}"
            return await self.store.insert_article(blog.id, article, product_ids=product_ids, publish=publish)

    async def generate_article(
        self,
        blog_id: str,
        article_type: Any,
        *,
        subject: Optional[str] = None,
        product_ids: Sequence[str] = (),
        keywords: Sequence[str] = (),
        tone: ArticleTone = ArticleTone.PROFESSIONAL,
        publish: bool = False,
    ) -> Dict[str, Any]:
        article_type = parse_article_type(article_type)
        if not (subject or "").strip() and not product_ids:
            raise ValueError("subject or product_ids is required")

        blog = await self._require_blog(blog_id)
        products = await self.store.get_products(blog_id, product_ids) if product_ids else []
        if product_ids and not products:
            raise ProductNotFoundError(", ".join(product_ids))

        record = await self._save_article(
            blog,
            article_type,
            subject=subject,
            products=products,
            keywords=keywords,
            tone=ArticleTone(tone),
            publish=publish,
        )
        logger.info("article_generated", blog_id=blog_id, type=article_type.value, slug=record.get("slug"))
        return record

    async def generate_article_batch(
        self,
        blog_id: str,
        product_id: str,
        other_product_ids: Sequence[str] = (),
    ) -> IngestReport:
        """
        Review, guide, comparatif and top for one main product, as drafts.
        Each type is attempted independently of the others.
        """
        blog = await self._require_blog(blog_id)
        main = await self.store.get_product(blog_id, product_id)
        if main is None:
            raise ProductNotFoundError(product_id)
        others = await self.store.get_products(blog_id, other_product_ids) if other_product_ids else []

        plan = [
            (ArticleType.REVIEW, [main]),
            (ArticleType.GUIDE, [main]),
            (ArticleType.COMPARATIF, [main, *others[:2]]),
            (ArticleType.TOP, [main, *others]),
        ]
        report = IngestReport()
        for article_type, products in plan:
            try:
                record = await self._save_article(
                    blog,
                    article_type,
                    subject=main.title,
                    products=products,
                    keywords=main.features[:3],
                    tone=ArticleTone.ENTHUSIASTIC,
                    publish=False,
                )
                report.add_success(article_type.value, record)
            except Exception as exc:
                logger.warning(
                    "article_batch_item_failed",
                    blog_id=blog_id,
                    product_id=product_id,
                    type=article_type.value,
                    error=_reason(exc),
                )
                report.add_failure(article_type.value, f"{article_type.value.capitalize()}: {_reason(exc)}")

        logger.info("article_batch_done", blog_id=blog_id, product_id=product_id, **report.counters())
        return report

    # ------------------------------------------------------------------
    # News
    # ------------------------------------------------------------------

    async def _select_new_items(
        self,
        blog_id: str,
        items: Sequence[ScrapedNewsItem],
        max_items: int,
    ) -> List[ScrapedNewsItem]:
        fresh: List[ScrapedNewsItem] = []
        for item in items:
            if len(fresh) >= max_items:
                break
            if not await self.store.news_exists(blog_id, item.url):
                fresh.append(item)
        return fresh

    async def _ingest_news_item(self, blog: Blog, item: ScrapedNewsItem, report: IngestReport) -> None:
        try:
            result = await self.news_generator.generate_summary(item, blog.niche)
        except Exception as exc:
            logger.warning("news_generation_failed", blog_id=blog.id, url=item.url, error=_reason(exc))
            report.add_failure(item.url, _reason(exc))
            return

        if isinstance(result, NewsSkip):
            report.add_skip(item.url, result.reason)
            return

        summary: GeneratedNewsSummary = result
        image_url = None
        if self.image_search is not None and summary.image_keyword:
            try:
                image_url = await self.image_search.search_image(summary.image_keyword)
            except Exception as exc:
                logger.warning("news_image_lookup_failed", blog_id=blog.id, url=item.url, error=_reason(exc))

        try:
            record = await self.store.insert_news(blog.id, item, summary, image_url=image_url)
        except DuplicateRecordError:
            logger.info("news_already_exists", blog_id=blog.id, url=item.url)
            report.add_skip(item.url, NEWS_EXISTS_REASON)
            return
        except Exception as exc:
            logger.exception("news_insert_failed", blog_id=blog.id, url=item.url)
            report.add_failure(item.url, _reason(exc))
            return
        report.add_success(item.url, record)

    async def _generate_news_for_blog(
        self,
        blog: Blog,
        *,
        scrape_count: int,
        max_items: int,
        keywords: Optional[Sequence[str]],
        item_delay_s: float,
    ) -> IngestReport:
        report = IngestReport()
        async with self.news_scraper_factory() as scraper:
            scraped = await scraper.fetch_news_for_niche(blog.niche, keywords=keywords, max_results=scrape_count)
        if not scraped:
            logger.info("news_nothing_scraped", blog_id=blog.id, niche=blog.niche)
            return report

        fresh = await self._select_new_items(blog.id, scraped, max_items)
        logger.info("news_items_selected", blog_id=blog.id, scraped=len(scraped), fresh=len(fresh))

        for item in fresh:
            await self._ingest_news_item(blog, item, report)
            await _pause(item_delay_s)
        return report

    async def generate_news(
        self,
        blog_id: str,
        *,
        max_items: int = 10,
        keywords: Optional[Sequence[str]] = None,
        delay_s: Optional[float] = None,
    ) -> IngestReport:
        blog = await self._require_blog(blog_id)
        report = await self._generate_news_for_blog(
            blog,
            scrape_count=max_items * 2,
            max_items=max_items,
            keywords=keywords,
            item_delay_s=self.pacing.news_item_delay_s if delay_s is None else delay_s,
        )
        logger.info("news_generate_done", blog_id=blog_id, **report.counters())
        return report

    async def generate_news_for_active_blogs(
        self,
        max_per_blog: int = CRON_MAX_NEW_PER_BLOG,
        *,
        delay_s: Optional[float] = None,
    ) -> NewsSweepResult:
        """Scheduled sweep over every active blog; one blog failing does not stop the others."""
        blogs = await self.store.list_active_blogs()
        result = NewsSweepResult()

        for index, blog in enumerate(blogs):
            run = BlogNewsRun(blog_id=blog.id, blog_name=blog.name)
            try:
                run.report = await self._generate_news_for_blog(
                    blog,
                    scrape_count=CRON_SCRAPE_PER_BLOG,
                    max_items=max_per_blog,
                    keywords=None,
                    item_delay_s=self.pacing.cron_item_delay_s if delay_s is None else delay_s,
                )
            except Exception as exc:
                logger.exception("news_sweep_blog_failed", blog_id=blog.id)
                run.error = _reason(exc)
                result.total_errors += 1

            result.blogs_processed += 1
            result.total_generated += len(run.report.succeeded)
            result.total_errors += len(run.report.failed)
            result.total_skipped += len(run.report.skipped)
            result.details.append(run)

            if index < len(blogs) - 1:
                await _pause(self.pacing.blog_delay_s)

        logger.info(
            "news_sweep_done",
            blogs=result.blogs_processed,
            generated=result.total_generated,
            errors=result.total_errors,
            skipped=result.total_skipped,
        )
        return result


def build_ingest_service(pool: Any, *, pacing: Optional[PacingConfig] = None) -> IngestService:
    """Production wiring: Postgres store, OpenAI oracle, live scrapers."""
    from services.news_google_service import GoogleNewsService
    from services.openai_service import OpenAIService
    from services.product_scraper_service import ProductScraperService
    from services.unsplash_service import UnsplashService

    pacing = pacing or PacingConfig()
    oracle = OpenAIService()
    return IngestService(
        store=ContentStore(pool),
        article_generator=ArticleGenerationService(oracle),
        news_generator=NewsGenerationService(oracle),
        product_scraper_factory=ProductScraperService,
        news_scraper_factory=partial(GoogleNewsService, request_delay_s=pacing.rss_delay_s),
        image_search=UnsplashService(),
        pacing=pacing,
    )
