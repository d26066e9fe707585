# services/text_utils.py
from __future__ import annotations

import json
import math
import re
import time
import unicodedata
from html import unescape
from typing import Any, Dict, Optional

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_CODE_FENCE_RE = re.compile(r"```(?:json)?", flags=re.IGNORECASE)

SLUG_MAX_LENGTH = 60
WORDS_PER_MINUTE = 200
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    "Écouteurs sans-fil, édition 2025!" -> "ecouteurs-sans-fil-edition-2025".
    Only [a-z0-9-], no leading/trailing hyphen, at most max_length chars.
    slugify(slugify(x)) == slugify(x).
    """
    decomposed = unicodedata.normalize("NFD", text or "")
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _NON_SLUG_RE.sub("-", ascii_only.lower()).strip("-")
    return slug[:max_length].strip("-")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def timestamp_suffix() -> str:
    return str(int(time.time() * 1000))


def base36_suffix() -> str:
    return _to_base36(int(time.time() * 1000))


def strip_html(value: str) -> str:
    text = unescape(value or "")
    text = _HTML_TAG_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip()


def estimate_reading_time(content: str) -> int:
    """
    Approximate minutes of reading: ceil(words / 200) over the tag-stripped
    content. An estimate for display, never exact.
    """
    words = strip_html(content).split()
    return max(1, math.ceil(len(words) / WORDS_PER_MINUTE))


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Oracle JSON is untrusted text: drop markdown fences, take the first {...}
    block, remove trailing commas. Returns None when nothing parses to a dict.
    """
    if not text:
        return None
    cleaned = _CODE_FENCE_RE.sub("", text)
    m = re.search(r"\{.*\}", cleaned, flags=re.DOTALL)
    if not m:
        return None
    candidate = re.sub(r",\s*([}\]])", r"\1", m.group(0))
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def extract_json_list(text: str) -> Optional[list]:
    if not text:
        return None
    cleaned = _CODE_FENCE_RE.sub("", text)
    m = re.search(r"\[.*\]", cleaned, flags=re.DOTALL)
    if not m:
        return None
    candidate = re.sub(r",\s*([}\]])", r"\1", m.group(0))
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, list) else None
