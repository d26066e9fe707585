from __future__ import annotations

import calendar
import io
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import feedparser

from app.models.content import ScrapedNewsItem
from services.text_utils import collapse_whitespace, strip_html

MAX_SNIPPET_CHARS = 500


class RSSNormalizationError(Exception):
    """
    Recoverable failure for a single RSS entry. Logged and counted, never
    allowed to abort the feed.
    """

    def __init__(self, message: str, entry_raw: Dict[str, Any] | None = None):
        super().__init__(message)
        self.entry_raw = entry_raw or {}


def extract_domain(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def _entry_get(entry: Any, key: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(key)
    return getattr(entry, key)


def _extract_title(entry: Any) -> str:
    title = _entry_get(entry, "title")
    if isinstance(title, str):
        return collapse_whitespace(strip_html(title))
    return ""


def _extract_url(entry: Any) -> str:
    link = _entry_get(entry, "link")
    if isinstance(link, str) and link.strip():
        return link.strip()
    return ""


def _extract_source(entry: Any, url: str) -> str:
    source = _entry_get(entry, "source")
    if isinstance(source, dict):
        title = source.get("title")
        if isinstance(title, str) and title.strip():
            return title.strip()
    return extract_domain(url)


def _extract_snippet(entry: Any) -> str:
    summary = _entry_get(entry, "summary") or _entry_get(entry, "description")
    if isinstance(summary, str) and summary.strip():
        return strip_html(summary)[:MAX_SNIPPET_CHARS]
    return ""


def _struct_time_to_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _extract_published_ts(entry: Any) -> Optional[datetime]:
    return _struct_time_to_datetime(_entry_get(entry, "published_parsed")) or _struct_time_to_datetime(
        _entry_get(entry, "updated_parsed")
    )


def _extract_published(entry: Any) -> Optional[str]:
    published = _entry_get(entry, "published") or _entry_get(entry, "updated")
    if isinstance(published, str) and published.strip():
        return published.strip()
    return None


def normalize_entry(entry: Any) -> Tuple[ScrapedNewsItem | None, RSSNormalizationError | None]:
    """
    (item, None) on success, (None, None) for entries without title or link
    (silently dropped), (None, error) for entries that blew up.
    """
    try:
        title = _extract_title(entry)
        url = _extract_url(entry)
        if not title or not url:
            return None, None
        return (
            ScrapedNewsItem(
                title=title,
                url=url,
                source=_extract_source(entry, url),
                snippet=_extract_snippet(entry),
                published_at=_extract_published(entry),
                published_ts=_extract_published_ts(entry),
            ),
            None,
        )
    except Exception as exc:
        raw = entry if isinstance(entry, dict) else {}
        return None, RSSNormalizationError(str(exc), entry_raw=raw)


def normalize_feed_entries(
    parsed_feed: Any,
) -> Tuple[List[ScrapedNewsItem], List[RSSNormalizationError]]:
    items: List[ScrapedNewsItem] = []
    errors: List[RSSNormalizationError] = []
    if isinstance(parsed_feed, dict):
        entries = parsed_feed.get("entries") or []
    else:
        entries = getattr(parsed_feed, "entries", []) or []
    for entry in entries:
        item, err = normalize_entry(entry)
        if item is not None:
            items.append(item)
        elif err is not None:
            errors.append(err)
    return items, errors


def parse_google_news_rss(content: Union[bytes, str]) -> List[ScrapedNewsItem]:
    """
    Tolerant parse of one Google News RSS response body. feedparser does not
    validate: a malformed document still yields the items it recognized.
    The body is always handed over as a stream so it is never taken for a
    URL or a file path.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    parsed = feedparser.parse(io.BytesIO(content or b""))
    items, _ = normalize_feed_entries(parsed)
    return items


# -------- Aggregation helpers -------------------------------------------------

def parse_published_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def published_datetime(item: ScrapedNewsItem) -> Optional[datetime]:
    """feedparser's parsed date when the item came from a feed, else the raw string parsed."""
    return item.published_ts or parse_published_at(item.published_at)


def merge_news_items(batches: Iterable[Sequence[ScrapedNewsItem]]) -> List[ScrapedNewsItem]:
    """Flatten per-keyword results, deduplicated by URL; first occurrence wins."""
    seen: set[str] = set()
    merged: List[ScrapedNewsItem] = []
    for batch in batches:
        for item in batch:
            if item.url in seen:
                continue
            seen.add(item.url)
            merged.append(item)
    return merged


def sort_news_by_date(items: Sequence[ScrapedNewsItem]) -> List[ScrapedNewsItem]:
    """
    Newest first. Items without a parseable date keep their position; dated
    items are sorted (stable) into the remaining slots.
    """
    dates = [published_datetime(item) for item in items]
    dated = sorted(
        (i for i, d in enumerate(dates) if d is not None),
        key=lambda i: dates[i],
        reverse=True,
    )
    # sorted(reverse=True) keeps equal keys in original order
    result = list(items)
    slots = [i for i, d in enumerate(dates) if d is not None]
    for slot, source_index in zip(slots, dated):
        result[slot] = items[source_index]
    return result
