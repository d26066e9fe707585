from __future__ import annotations

from typing import Any, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import settings
from app.deps.ingest import get_ingest_service
from app.main import app
from services.article_generation_service import ArticleGenerationService
from services import ingest_service
from services.ingest_service import IngestService, PacingConfig
from services.news_generation_service import NewsGenerationService
from tests.fixtures import (
    FakeNewsScraper,
    FakeOracle,
    FakeProductScraper,
    FakeStore,
    make_blog,
    make_news_item,
    make_scraped_product,
    make_stored_product,
)

pytestmark = pytest.mark.asyncio

NEWS_JSON = '{"title": "Titre", "summary": "Résumé", "category": "tech", "tags": [], "imageKeyword": "phone"}'

BLOG = make_blog()


def _build_service() -> IngestService:
    store = FakeStore([BLOG])
    oracle = FakeOracle(default=lambda system, user: NEWS_JSON)
    return IngestService(
        store=store,
        article_generator=ArticleGenerationService(oracle),
        news_generator=NewsGenerationService(oracle),
        product_scraper_factory=lambda: FakeProductScraper({"B084TSLMC6": make_scraped_product()}),
        news_scraper_factory=lambda: FakeNewsScraper([make_news_item(1), make_news_item(2)]),
        pacing=PacingConfig.disabled(),
    )


@pytest_asyncio.fixture
async def api() -> Dict[str, Any]:
    service = _build_service()

    async def _override() -> IngestService:
        return service

    app.dependency_overrides[get_ingest_service] = _override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield {"client": client, "service": service}
    app.dependency_overrides.pop(get_ingest_service, None)


async def test_scrape_products_endpoint(api) -> None:
    resp = await api["client"].post(
        "/admin/products/scrape",
        json={"blog_id": BLOG.id, "asins": ["B084TSLMC6", "nope"]},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["attempted"] == 2
    assert data["counters"] == {"succeeded": 1, "failed": 1, "skipped": 0}
    assert data["report"]["failed"][0]["reason"] == "ASIN invalide"
    assert data["ok"] is False


async def test_scrape_products_requires_inputs(api) -> None:
    resp = await api["client"].post("/admin/products/scrape", json={"blog_id": BLOG.id, "asins": []})
    assert resp.status_code == 400


async def test_generate_article_invalid_type_is_400(api) -> None:
    resp = await api["client"].post(
        "/admin/articles/generate",
        json={"blog_id": BLOG.id, "article_type": "tutoriel", "subject": "X"},
    )
    assert resp.status_code == 400


async def test_generate_article_unknown_blog_is_404(api) -> None:
    resp = await api["client"].post(
        "/admin/articles/generate",
        json={"blog_id": "missing", "article_type": "review", "subject": "X"},
    )
    assert resp.status_code == 404


async def test_generate_article_returns_record(api) -> None:
    oracle = api["service"].article_generator._oracle
    oracle.replies = ["<p>Contenu</p>", '{"title": "Guide des casques"}']

    resp = await api["client"].post(
        "/admin/articles/generate",
        json={"blog_id": BLOG.id, "article_type": "guide", "subject": "Casques"},
    )

    assert resp.status_code == 200
    article = resp.json()["article"]
    assert article["slug"] == "guide-des-casques"
    assert article["status"] == "draft"


async def test_generate_batch_unknown_product_is_404(api) -> None:
    resp = await api["client"].post(
        "/admin/articles/generate-batch",
        json={"blog_id": BLOG.id, "product_id": "missing"},
    )
    assert resp.status_code == 404


async def test_generate_batch_reports_all_types(api) -> None:
    store = api["service"].store
    product = make_stored_product(BLOG.id)
    store.products.append(product)
    api["service"].article_generator._oracle.default = lambda system, user: (
        '{"title": "Article"}' if "métadonnées" in user else "<p>Contenu</p>"
    )

    resp = await api["client"].post(
        "/admin/articles/generate-batch",
        json={"blog_id": BLOG.id, "product_id": product.id},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["counters"]["succeeded"] == 4
    assert [s["key"] for s in data["report"]["succeeded"]] == ["review", "guide", "comparatif", "top"]


async def test_generate_news_then_list(api) -> None:
    resp = await api["client"].post("/admin/news/generate", json={"blog_id": BLOG.id, "max_items": 5})
    assert resp.status_code == 200
    assert resp.json()["counters"]["succeeded"] == 2

    listing = await api["client"].get("/admin/news", params={"blog_id": BLOG.id, "limit": 1})
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 2
    assert len(body["news"]) == 1


async def test_list_news_requires_blog_id(api) -> None:
    resp = await api["client"].get("/admin/news")
    assert resp.status_code == 400


async def test_cron_requires_secret_when_configured(api, monkeypatch) -> None:
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    denied = await api["client"].get("/admin/cron/generate-news")
    assert denied.status_code == 401

    allowed = await api["client"].get(
        "/admin/cron/generate-news",
        headers={"Authorization": "Bearer s3cret"},
    )
    assert allowed.status_code == 200
    data = allowed.json()
    assert data["blogs_processed"] == 1
    assert data["total_generated"] == 2


async def test_scrape_products_delay_override(api, monkeypatch) -> None:
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(ingest_service.asyncio, "sleep", fake_sleep)

    resp = await api["client"].post(
        "/admin/products/scrape",
        json={"blog_id": BLOG.id, "asins": ["B084TSLMC6"], "delay_s": 0.25},
    )

    assert resp.status_code == 200
    assert delays == [0.25]


async def test_generate_news_delay_override(api, monkeypatch) -> None:
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(ingest_service.asyncio, "sleep", fake_sleep)

    resp = await api["client"].post(
        "/admin/news/generate",
        json={"blog_id": BLOG.id, "max_items": 5, "delay_s": 0.75},
    )

    assert resp.status_code == 200
    assert delays == [0.75, 0.75]


async def test_negative_delay_is_rejected(api) -> None:
    resp = await api["client"].post(
        "/admin/products/scrape",
        json={"blog_id": BLOG.id, "asins": ["B084TSLMC6"], "delay_s": -1},
    )
    assert resp.status_code == 422


async def test_list_products_after_scrape(api) -> None:
    await api["client"].post("/admin/products/scrape", json={"blog_id": BLOG.id, "asins": ["B084TSLMC6"]})

    resp = await api["client"].get("/admin/products", params={"blog_id": BLOG.id})

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["products"][0]["product_id"] == "B084TSLMC6"

    missing = await api["client"].get("/admin/products")
    assert missing.status_code == 400
