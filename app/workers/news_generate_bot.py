from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from app.config import require_database_url
from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from services.db_service import create_pool
from services.ingest_service import build_ingest_service

configure_logging(service_name="worker")
logger = get_logger().bind(worker="news_generate_bot")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="NewsGenerateBot: scrape Google News, summarize new items and store them."
    )
    parser.add_argument(
        "--blog-id",
        default=None,
        help="Blog to generate news for. Without it every active blog is processed.",
    )
    parser.add_argument(
        "--max-items",
        type=int,
        default=None,
        help="Maximum new items per blog (default 10 for one blog, 5 for the sweep).",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between news items (default: configured pacing).",
    )
    return parser.parse_args(argv)


async def run_generate(
    blog_id: Optional[str],
    max_items: Optional[int],
    delay_s: Optional[float] = None,
) -> int:
    pool = await create_pool(require_database_url())
    try:
        service = build_ingest_service(pool)
        if blog_id:
            report = await service.generate_news(blog_id, max_items=max_items or 10, delay_s=delay_s)
            logger.info("news_generate_bot_finished", blog_id=blog_id, **report.counters())
            return 0 if report.succeeded or not report.failed else 1

        kwargs = {"max_per_blog": max_items} if max_items else {}
        result = await service.generate_news_for_active_blogs(delay_s=delay_s, **kwargs)
        logger.info(
            "news_generate_bot_finished",
            blogs=result.blogs_processed,
            generated=result.total_generated,
            errors=result.total_errors,
            skipped=result.total_skipped,
        )
        failed_everywhere = result.blogs_processed > 0 and all(run.error for run in result.details)
        return 1 if failed_everywhere else 0
    except Exception as exc:
        logger.error("news_generate_bot_failed", error=str(exc))
        return 1
    finally:
        await pool.close()


async def main_async() -> int:
    args = parse_args()
    with with_run_id():
        return await run_generate(blog_id=args.blog_id, max_items=args.max_items, delay_s=args.delay)


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
