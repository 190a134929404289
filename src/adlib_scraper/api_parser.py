"""Tolerant parsing of raw internal-API response text.

The response schema is undocumented, so nothing here decodes it as a whole.
Each field has its own named rule that returns ``None`` when its pattern is
absent; schema drift in one field leaves the others working.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

from .models import AdRecord

UTC = getattr(datetime, "UTC", timezone.utc)

HIJACK_GUARD_RE = re.compile(r"^\s*for \(;;\);")
AD_DATA_MARKERS = ("ad_archive_id", "library_id")
AD_ID_RE = re.compile(r'"(?:ad_archive_id|library_id)"\s*:\s*"?(\d+)"?')
WINDOW_BEFORE = 500
WINDOW_AFTER = 2000


def _string_field(name: str) -> re.Pattern[str]:
    return re.compile(r'"' + name + r'"\s*:\s*"([^"]+)"')


def _epoch_field(name: str) -> re.Pattern[str]:
    return re.compile(r'"' + name + r'"\s*:\s*(\d+)')


FORWARD_CURSOR_RE = _string_field("forward_cursor")
END_CURSOR_RE = _string_field("end_cursor")
START_DATE_RE = _epoch_field("start_date")
END_DATE_RE = _epoch_field("end_date")
THUMBNAIL_RE = _string_field("video_preview_image_url")

# Highest priority first.
VIDEO_URL_RULES = (("video_hd_url", _string_field("video_hd_url")), ("video_sd_url", _string_field("video_sd_url")))
IMAGE_URL_RULES = (
    ("resized_image_url", _string_field("resized_image_url")),
    ("original_image_url", _string_field("original_image_url")),
    ("snapshot_url", _string_field("snapshot_url")),
)


def strip_guard(body: str) -> str:
    return HIJACK_GUARD_RE.sub("", body or "", count=1)


def unescape_json_string(raw: str) -> str:
    """Decode JSON string escapes (``\\/``, ``\\u0026``); fall back to unescaping slashes only."""

    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw.replace("\\/", "/")


def format_epoch(seconds: int | str | None) -> str | None:
    """Render an epoch in the library's display format, e.g. ``3 Jan 2024`` (UTC)."""

    if seconds in (None, ""):
        return None
    try:
        d = datetime.fromtimestamp(int(seconds), tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
    return f"{d.day} {d.strftime('%b')} {d.year}"


# ============================
# Named extraction rules
# ============================


def rule_next_cursor(body: str) -> str | None:
    for pattern in (FORWARD_CURSOR_RE, END_CURSOR_RE):
        match = pattern.search(body)
        if match:
            return match.group(1)
    return None


def rule_has_ad_data(body: str) -> bool:
    return any(marker in body for marker in AD_DATA_MARKERS)


def rule_ad_ids(body: str) -> list[tuple[str, int]]:
    """Distinct ad identifiers with the offset of their first occurrence, in order."""

    seen: dict[str, int] = {}
    for match in AD_ID_RE.finditer(body):
        seen.setdefault(match.group(1), match.start())
    return list(seen.items())


def ad_window(body: str, offset: int, next_offset: int | None = None, prev_offset: int | None = None) -> str:
    """Text belonging to one identifier, running up to the next identifier.

    Only the first identifier in a body also gets the text before it; any later
    one would otherwise read its predecessor's fields.
    """

    hi = min(len(body), offset + WINDOW_AFTER)
    if next_offset is not None:
        hi = min(hi, next_offset)
    if prev_offset is not None:
        return body[offset:hi]
    lo = max(0, offset - WINDOW_BEFORE)
    return body[offset:hi] + body[lo:offset]


def rule_start_date(window: str) -> str | None:
    match = START_DATE_RE.search(window)
    return format_epoch(match.group(1)) if match else None


def rule_end_date(window: str) -> str | None:
    match = END_DATE_RE.search(window)
    return format_epoch(match.group(1)) if match else None


def _first_url(window: str, rules: Iterable[tuple[str, re.Pattern[str]]]) -> str | None:
    for _name, pattern in rules:
        match = pattern.search(window)
        if match:
            return unescape_json_string(match.group(1))
    return None


def rule_video_url(window: str) -> str | None:
    return _first_url(window, VIDEO_URL_RULES)


def rule_image_url(window: str) -> str | None:
    return _first_url(window, IMAGE_URL_RULES)


def rule_thumbnail(window: str) -> str | None:
    match = THUMBNAIL_RE.search(window)
    return unescape_json_string(match.group(1)) if match else None


def _safe(rule: Callable[[str], str | None], window: str) -> str | None:
    try:
        return rule(window)
    except Exception:
        return None


def record_from_window(ad_id: str, window: str) -> AdRecord:
    video_url = _safe(rule_video_url, window)
    if video_url:
        return AdRecord(
            library_id=ad_id,
            asset_type="video",
            asset_url=video_url,
            thumbnail_url=_safe(rule_thumbnail, window),
            start_date=_safe(rule_start_date, window),
            end_date=_safe(rule_end_date, window),
        )
    return AdRecord(
        library_id=ad_id,
        asset_type="image",
        asset_url=_safe(rule_image_url, window),
        start_date=_safe(rule_start_date, window),
        end_date=_safe(rule_end_date, window),
    )


@dataclass
class ApiPage:
    next_cursor: str | None
    has_ad_data: bool
    ad_ids: list[str] = field(default_factory=list)
    records: list[AdRecord] = field(default_factory=list)


def parse_api_page(raw: str, *, skip_ids: set[str] | frozenset[str] = frozenset()) -> ApiPage:
    """Parse one response; ids in ``skip_ids`` are listed but not turned into records."""

    body = strip_guard(raw)
    page = ApiPage(next_cursor=rule_next_cursor(body), has_ad_data=rule_has_ad_data(body))
    if not page.has_ad_data:
        return page
    ids = rule_ad_ids(body)
    for i, (ad_id, offset) in enumerate(ids):
        page.ad_ids.append(ad_id)
        if ad_id in skip_ids:
            continue
        prev_offset = ids[i - 1][1] if i > 0 else None
        next_offset = ids[i + 1][1] if i + 1 < len(ids) else None
        page.records.append(record_from_window(ad_id, ad_window(body, offset, next_offset, prev_offset)))
    return page


__all__ = [
    "ApiPage",
    "format_epoch",
    "parse_api_page",
    "record_from_window",
    "rule_ad_ids",
    "rule_has_ad_data",
    "rule_image_url",
    "rule_next_cursor",
    "rule_start_date",
    "rule_video_url",
    "strip_guard",
    "unescape_json_string",
]
