"""URL helpers for the ad library page and its internal endpoints."""

from __future__ import annotations

import re
import urllib.parse

LIBRARY_BASE_URL = "https://www.facebook.com/ads/library/"
INTERNAL_API_PATH = "/api/graphql"
AJAX_PATH = "/ajax/"
LIBRARY_PATH_MARKER = "ads_library"
PAGE_ID_RE = re.compile(r"^[0-9]+$")
URL_LOG_CHARS = 200


def build_library_url(page_id: str, *, active_status: str = "active") -> str:
    """Return the library URL listing every ad of one advertiser page, most impressions first."""

    params = {
        "active_status": active_status,
        "ad_type": "all",
        "country": "ALL",
        "is_targeted_country": "false",
        "media_type": "all",
        "search_type": "page",
        "sort_data[mode]": "total_impressions",
        "sort_data[direction]": "desc",
        "view_all_page_id": page_id,
    }
    return f"{LIBRARY_BASE_URL}?{urllib.parse.urlencode(params)}"


def parse_page_id_from_url(url: str) -> str | None:
    try:
        parsed = urllib.parse.urlparse(url)
        qs = urllib.parse.parse_qs(parsed.query)
        value = (qs.get("view_all_page_id") or [None])[0]
        if value and PAGE_ID_RE.match(value):
            return value
        return None
    except Exception:
        return None


def classify_response_url(url: str) -> str | None:
    """Return ``api``, ``ajax`` or ``library`` for endpoints worth observing, else ``None``."""

    if not url:
        return None
    if INTERNAL_API_PATH in url:
        return "api"
    if AJAX_PATH in url:
        return "ajax"
    if LIBRARY_PATH_MARKER in url:
        return "library"
    return None


def truncate_url(url: str, limit: int = URL_LOG_CHARS) -> str:
    return (url or "")[:limit]


__all__ = [
    "INTERNAL_API_PATH",
    "LIBRARY_BASE_URL",
    "build_library_url",
    "classify_response_url",
    "parse_page_id_from_url",
    "truncate_url",
]
