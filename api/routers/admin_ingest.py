from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.core.logging import get_logger
from app.deps.ingest import get_ingest_service, verify_cron_secret
from app.models.content import ArticleTone, StoredProduct
from app.models.ingest import IngestReport, NewsSweepResult
from services.ingest_service import IngestService
from services.openai_service import OracleError

router = APIRouter(
    prefix="/admin",
    tags=["admin-ingest"],
)

logger = get_logger().bind(module="admin_ingest")


class ProductScrapeRequest(BaseModel):
    blog_id: str
    asins: List[str] = Field(default_factory=list, description="ASINs or Amazon product URLs.")
    delay_s: Optional[float] = Field(
        default=None,
        ge=0,
        description="Pause between scraped products; defaults to the configured pacing.",
    )


class ArticleGenerateRequest(BaseModel):
    blog_id: str
    article_type: str
    subject: Optional[str] = None
    product_ids: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    tone: ArticleTone = ArticleTone.PROFESSIONAL
    publish: bool = False


class ArticleBatchRequest(BaseModel):
    blog_id: str
    product_id: str
    other_product_ids: List[str] = Field(default_factory=list)


class NewsGenerateRequest(BaseModel):
    blog_id: str
    max_items: int = Field(default=10, ge=1, le=50)
    keywords: Optional[List[str]] = None
    delay_s: Optional[float] = Field(
        default=None,
        ge=0,
        description="Pause between news items; defaults to the configured pacing.",
    )


class ReportResponse(BaseModel):
    ok: bool
    attempted: int
    counters: Dict[str, int]
    report: IngestReport


class ArticleResponse(BaseModel):
    article: Dict[str, Any]


class ProductListResponse(BaseModel):
    products: List[StoredProduct]
    total: int


class NewsListResponse(BaseModel):
    news: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int


def _report_response(report: IngestReport) -> ReportResponse:
    return ReportResponse(
        ok=report.ok,
        attempted=report.attempted,
        counters=report.counters(),
        report=report,
    )


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, OracleError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    raise exc


@router.post("/products/scrape", response_model=ReportResponse)
async def scrape_products(
    payload: ProductScrapeRequest,
    service: IngestService = Depends(get_ingest_service),
) -> ReportResponse:
    if not payload.asins:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="asins must not be empty")
    report = await service.scrape_products(payload.blog_id, payload.asins, delay_s=payload.delay_s)
    return _report_response(report)


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    blog_id: Optional[str] = Query(default=None),
    service: IngestService = Depends(get_ingest_service),
) -> ProductListResponse:
    if not blog_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="blog_id is required")
    products = await service.store.list_products(blog_id)
    return ProductListResponse(products=products, total=len(products))


@router.post("/articles/generate", response_model=ArticleResponse)
async def generate_article(
    payload: ArticleGenerateRequest,
    service: IngestService = Depends(get_ingest_service),
) -> ArticleResponse:
    try:
        record = await service.generate_article(
            payload.blog_id,
            payload.article_type,
            subject=payload.subject,
            product_ids=payload.product_ids,
            keywords=payload.keywords,
            tone=payload.tone,
            publish=payload.publish,
        )
    except (LookupError, ValueError, OracleError) as exc:
        logger.warning("article_generate_rejected", blog_id=payload.blog_id, error=str(exc))
        _raise_http(exc)
    return ArticleResponse(article=record)


@router.post("/articles/generate-batch", response_model=ReportResponse)
async def generate_article_batch(
    payload: ArticleBatchRequest,
    service: IngestService = Depends(get_ingest_service),
) -> ReportResponse:
    try:
        report = await service.generate_article_batch(
            payload.blog_id,
            payload.product_id,
            payload.other_product_ids,
        )
    except LookupError as exc:
        _raise_http(exc)
    return _report_response(report)


@router.post("/news/generate", response_model=ReportResponse)
async def generate_news(
    payload: NewsGenerateRequest,
    service: IngestService = Depends(get_ingest_service),
) -> ReportResponse:
    try:
        report = await service.generate_news(
            payload.blog_id,
            max_items=payload.max_items,
            keywords=payload.keywords,
            delay_s=payload.delay_s,
        )
    except LookupError as exc:
        _raise_http(exc)
    return _report_response(report)


@router.get("/news", response_model=NewsListResponse)
async def list_news(
    blog_id: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: IngestService = Depends(get_ingest_service),
) -> NewsListResponse:
    if not blog_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="blog_id is required")
    rows, total = await service.store.list_news(blog_id, limit=limit, offset=offset)
    return NewsListResponse(news=rows, total=total, limit=limit, offset=offset)


@router.get("/cron/generate-news", response_model=NewsSweepResult, dependencies=[Depends(verify_cron_secret)])
async def cron_generate_news(
    service: IngestService = Depends(get_ingest_service),
) -> NewsSweepResult:
    return await service.generate_news_for_active_blogs()
