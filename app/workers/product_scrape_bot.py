from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from app.config import require_database_url
from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from services.db_service import create_pool
from services.ingest_service import build_ingest_service

configure_logging(service_name="worker")
logger = get_logger().bind(worker="product_scrape_bot")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ProductScrapeBot: scrape Amazon product pages into a blog.")
    parser.add_argument("--blog-id", required=True, help="Blog the products belong to.")
    parser.add_argument("--delay", type=float, default=None, help="Seconds to wait between products.")
    parser.add_argument("asins", nargs="+", help="ASINs or Amazon product URLs.")
    return parser.parse_args(argv)


async def run_scrape(blog_id: str, asins: List[str], delay_s: Optional[float]) -> int:
    pool = await create_pool(require_database_url())
    try:
        service = build_ingest_service(pool)
        report = await service.scrape_products(blog_id, asins, delay_s=delay_s)
        for failure in report.failed:
            logger.warning("product_scrape_bot_item_failed", asin=failure.key, reason=failure.reason)
        logger.info("product_scrape_bot_finished", blog_id=blog_id, **report.counters())
        return 0 if report.succeeded else 1
    except Exception as exc:
        logger.error("product_scrape_bot_failed", error=str(exc))
        return 1
    finally:
        await pool.close()


async def main_async() -> int:
    args = parse_args()
    with with_run_id():
        return await run_scrape(blog_id=args.blog_id, asins=args.asins, delay_s=args.delay)


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
