"""Token and cursor discovery from captured traffic and embedded page scripts."""

from __future__ import annotations

import re
import urllib.parse
from typing import Iterable

from playwright.async_api import Page

from .models import NetworkCapture, TokenSet

QUERY_ID_FIELD = "doc_id"
CSRF_FIELD = "fb_dtsg"
SESSION_TOKEN_FIELD = "lsd"
VARIABLES_FIELD = "variables"

PAGE_ID_VARIABLE_KEYS = ("viewAllPageID", "view_all_page_id")
AD_RESPONSE_MARKERS = ("ad_archive_id", "library_id", "forward_cursor")

FORWARD_CURSOR_RE = re.compile(r'"forward_cursor"\s*:\s*"([^"]+)"')
END_CURSOR_RE = re.compile(r'"end_cursor"\s*:\s*"([^"]+)"')
HAS_NEXT_PAGE_RE = re.compile(r'"has_next_page"\s*:\s*(true|false)')
COLLATION_TOKEN_RE = re.compile(r'"collation_token"\s*:\s*"([^"]+)"')
SESSION_ID_RE = re.compile(r'"session_id"\s*:\s*"([^"]+)"')

SCRIPT_TEXT_JS = """
() => Array.from(document.querySelectorAll('script')).map(s => s.textContent || '').join('\\n')
"""


def parse_form_body(body: str) -> dict[str, str]:
    """Decode a form-encoded body, keeping the first non-empty value per key."""

    fields: dict[str, str] = {}
    for key, value in urllib.parse.parse_qsl(body or "", keep_blank_values=False):
        fields.setdefault(key, value)
    return fields


def is_ad_search_capture(fields: dict[str, str], response_body: str) -> bool:
    variables = fields.get(VARIABLES_FIELD) or ""
    if any(key in variables for key in PAGE_ID_VARIABLE_KEYS):
        return True
    return any(marker in (response_body or "") for marker in AD_RESPONSE_MARKERS)


def _first(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text or "")
    return match.group(1) if match else None


def scan_pagination_markers(tokens: TokenSet, text: str) -> None:
    """Fill cursor/collation/session markers from literal patterns in ``text`` (first seen wins)."""

    tokens.offer("cursor", _first(FORWARD_CURSOR_RE, text) or _first(END_CURSOR_RE, text))
    has_next = _first(HAS_NEXT_PAGE_RE, text)
    if has_next is not None:
        tokens.offer("has_next_page", has_next == "true")
    tokens.offer("collation_token", _first(COLLATION_TOKEN_RE, text))
    tokens.offer("session_id", _first(SESSION_ID_RE, text))


def derive_tokens(captures: Iterable[NetworkCapture], script_text: str = "") -> TokenSet:
    """Build the replay token set from captures (encounter order) and embedded scripts."""

    tokens = TokenSet()
    generic_query_id: str | None = None
    ad_query_id: str | None = None
    ad_query_source: str | None = None
    captures = list(captures)

    for capture in captures:
        fields = parse_form_body(capture.request_body)
        query_id = fields.get(QUERY_ID_FIELD)
        if query_id and generic_query_id is None:
            generic_query_id = query_id
        tokens.offer("csrf_token", fields.get(CSRF_FIELD))
        tokens.offer("session_token", fields.get(SESSION_TOKEN_FIELD))
        if query_id and ad_query_id is None and is_ad_search_capture(fields, capture.response_body):
            ad_query_id = query_id
            variables = fields.get(VARIABLES_FIELD) or ""
            ad_query_source = "variables" if any(k in variables for k in PAGE_ID_VARIABLE_KEYS) else "response"

    if ad_query_id:
        tokens.offer("query_id", ad_query_id)
        tokens.query_id_source = ad_query_source
    elif generic_query_id:
        tokens.offer("query_id", generic_query_id)
        tokens.query_id_source = "fallback"

    # Embedded scripts first; captured responses only fill what the scripts lack.
    scan_pagination_markers(tokens, script_text)
    for capture in captures:
        scan_pagination_markers(tokens, capture.response_body)
    return tokens


async def collect_script_text(page: Page) -> str:
    return await page.evaluate(SCRIPT_TEXT_JS) or ""


__all__ = [
    "collect_script_text",
    "derive_tokens",
    "is_ad_search_capture",
    "parse_form_body",
    "scan_pagination_markers",
]
