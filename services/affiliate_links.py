from __future__ import annotations

import re
from typing import Optional

from app.config import settings

# Generated HTML carries href="AFFILIATE_LINK_<ASIN>" on every buy button.
AFFILIATE_PLACEHOLDER_PREFIX = "AFFILIATE_LINK_"
_PLACEHOLDER_RE = re.compile(r"AFFILIATE_LINK_([A-Za-z0-9]{10})\b")


def build_amazon_affiliate_url(asin: str, affiliate_id: str, domain: Optional[str] = None) -> str:
    return f"https://{domain or settings.AMAZON_DOMAIN}/dp/{asin.upper()}?tag={affiliate_id}"


def resolve_affiliate_placeholders(
    content: str,
    affiliate_id: Optional[str],
    *,
    domain: Optional[str] = None,
) -> str:
    if not content or not affiliate_id:
        return content
    return _PLACEHOLDER_RE.sub(
        lambda m: build_amazon_affiliate_url(m.group(1), affiliate_id, domain),
        content,
    )
