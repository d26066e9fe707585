from __future__ import annotations

import pytest

from app.models.ingest import BlogNewsRun, IngestReport, NewsSweepResult
from app.workers import news_generate_bot, product_scrape_bot


class FakePool:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


def _patch_infra(monkeypatch, module, service):
    pool = FakePool()

    async def fake_create_pool(dsn):
        return pool

    monkeypatch.setattr(module, "require_database_url", lambda: "postgresql://u@h/db")
    monkeypatch.setattr(module, "create_pool", fake_create_pool)
    monkeypatch.setattr(module, "build_ingest_service", lambda p: service)
    return pool


class FakeNewsService:
    def __init__(self, report=None, sweep=None, error=None):
        self.report = report
        self.sweep = sweep
        self.error = error
        self.calls = []

    async def generate_news(self, blog_id, max_items=10, delay_s=None):
        self.calls.append(("generate_news", blog_id, max_items, delay_s))
        if self.error:
            raise self.error
        return self.report

    async def generate_news_for_active_blogs(self, max_per_blog=5, delay_s=None):
        self.calls.append(("sweep", max_per_blog, delay_s))
        return self.sweep


def test_news_bot_args():
    args = news_generate_bot.parse_args(["--blog-id", "b1", "--max-items", "3", "--delay", "0.5"])
    assert args.blog_id == "b1"
    assert args.max_items == 3
    assert args.delay == 0.5
    assert news_generate_bot.parse_args([]).blog_id is None


@pytest.mark.asyncio
async def test_news_bot_single_blog(monkeypatch):
    report = IngestReport()
    report.add_success("https://a.example/1")
    service = FakeNewsService(report=report)
    pool = _patch_infra(monkeypatch, news_generate_bot, service)

    exit_code = await news_generate_bot.run_generate(blog_id="b1", max_items=None)

    assert exit_code == 0
    assert service.calls == [("generate_news", "b1", 10, None)]
    assert pool.closed


@pytest.mark.asyncio
async def test_news_bot_sweep_all_blogs_failed(monkeypatch):
    sweep = NewsSweepResult(
        blogs_processed=1,
        total_errors=1,
        details=[BlogNewsRun(blog_id="b1", blog_name="A", error="db down")],
    )
    service = FakeNewsService(sweep=sweep)
    _patch_infra(monkeypatch, news_generate_bot, service)

    exit_code = await news_generate_bot.run_generate(blog_id=None, max_items=None)

    assert exit_code == 1
    assert service.calls == [("sweep", 5, None)]


@pytest.mark.asyncio
async def test_news_bot_unexpected_error(monkeypatch):
    service = FakeNewsService(error=RuntimeError("boom"))
    pool = _patch_infra(monkeypatch, news_generate_bot, service)

    assert await news_generate_bot.run_generate(blog_id="b1", max_items=2) == 1
    assert pool.closed


@pytest.mark.asyncio
async def test_product_bot(monkeypatch):
    class FakeProductService:
        async def scrape_products(self, blog_id, asins, delay_s=None):
            report = IngestReport()
            report.add_success(asins[0])
            report.add_failure(asins[1], "ASIN invalide")
            return report

    _patch_infra(monkeypatch, product_scrape_bot, FakeProductService())

    args = product_scrape_bot.parse_args(["--blog-id", "b1", "B084TSLMC6", "bad"])
    exit_code = await product_scrape_bot.run_scrape(args.blog_id, args.asins, args.delay)

    assert exit_code == 0


@pytest.mark.asyncio
async def test_news_bot_passes_delay_to_sweep(monkeypatch):
    service = FakeNewsService(sweep=NewsSweepResult())
    _patch_infra(monkeypatch, news_generate_bot, service)

    exit_code = await news_generate_bot.run_generate(blog_id=None, max_items=3, delay_s=0.5)

    assert exit_code == 0
    assert service.calls == [("sweep", 3, 0.5)]
