"""DOM record extraction for rendered ad cards.

The in-page script only gathers raw text and media attributes per card; the
field rules below run in Python so they can be exercised without a browser.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from playwright.async_api import Page

from .models import AdRecord

AD_CARD_SELECTOR = "div.x1plvlek.xryxfnj.x1gzqxud.x178xt8z.x1lun4ml"
METADATA_SPAN_SELECTOR = "span.x8t9es0.xw23nyj.xo1l8bm.x63nzvj.x108nfp6.xq9mrsl.x1h4wwuj.xeuugli"
ADVERTISER_SELECTOR = "div.x8t9es0.x1ldc4aq.x1xlr1w8.x1cgboj8.x4hq6eo.xq9mrsl.x1yc453h.x1h4wwuj.xeuugli"

LIBRARY_ID_RE = re.compile(r"Library ID:[ ]*([0-9]+)")
DATE_RANGE_RE = re.compile(r"([0-9]{1,2} [A-Za-z]{3} [0-9]{4}) - ([0-9]{1,2} [A-Za-z]{3} [0-9]{4})")
STARTED_RE = re.compile(r"Started running on ([0-9]{1,2} [A-Za-z]{3} [0-9]{4})")
IMPRESSIONS_RE = re.compile(r"Impressions:[ ]*(.+)")
ABBREVIATED_COUNT_RE = re.compile(r"^<[0-9]+$")
LOW_IMPRESSION_TEXT = "Low impression count"

CARD_SNAPSHOT_JS = """
([cardSel, metaSel]) => Array.from(document.querySelectorAll(cardSel)).map(card => {
    const text = (el) => (el && el.textContent) || '';
    const video = card.querySelector('video');
    return {
        metaTexts: Array.from(card.querySelectorAll(metaSel)).map(text),
        spanTexts: Array.from(card.querySelectorAll('span')).map(text),
        video: video ? { src: video.src || '', poster: video.poster || '' } : null,
        images: Array.from(card.querySelectorAll('img')).map(img => {
            const rect = img.getBoundingClientRect();
            return {
                src: img.src || '',
                width: rect.width || 0,
                height: rect.height || 0,
                naturalWidth: img.naturalWidth || 0,
                naturalHeight: img.naturalHeight || 0,
            };
        }),
    };
})
"""

ADVERTISER_JS = """
(sel) => {
    const el = document.querySelector(sel);
    return el ? ((el.textContent || '').trim() || null) : null;
}
"""


def parse_library_id(meta_texts: Iterable[str]) -> str | None:
    for text in meta_texts:
        match = LIBRARY_ID_RE.search(text or "")
        if match:
            return match.group(1)
    return None


def parse_dates(meta_texts: list[str]) -> tuple[str | None, str | None]:
    """Return (start, end) from a date-range span, else (start, None) from a start-only span."""

    for text in meta_texts:
        match = DATE_RANGE_RE.search(text or "")
        if match:
            return match.group(1).strip(), match.group(2).strip()
    for text in meta_texts:
        match = STARTED_RE.search(text or "")
        if match:
            return match.group(1), None
    return None, None


def parse_impressions(span_texts: list[str]) -> str | None:
    for text in span_texts:
        match = IMPRESSIONS_RE.search(text or "")
        if match:
            value = match.group(1).strip()
            if value:
                return value
            break
    for text in span_texts:
        stripped = (text or "").strip()
        if ABBREVIATED_COUNT_RE.match(stripped):
            return stripped
    return None


def _usable_image(src: str | None) -> bool:
    return bool(src) and "data:" not in src


def _area(img: dict[str, Any]) -> float:
    rendered = float(img.get("width") or 0) * float(img.get("height") or 0)
    if rendered > 0:
        return rendered
    # Lazy images that have not been laid out yet.
    return float(img.get("naturalWidth") or 0) * float(img.get("naturalHeight") or 0)


def pick_best_image(images: list[dict[str, Any]]) -> str | None:
    candidates = [img for img in images or [] if _usable_image(img.get("src"))]
    if not candidates:
        return None
    # max() keeps the first of equal areas, matching document order.
    return max(candidates, key=_area)["src"]


def record_from_card(card: dict[str, Any]) -> AdRecord | None:
    """Build one record from a raw card snapshot, or ``None`` if the card is unusable."""

    meta_texts = list(card.get("metaTexts") or [])
    span_texts = list(card.get("spanTexts") or [])
    library_id = parse_library_id(meta_texts)
    if not library_id:
        return None

    start_date, end_date = parse_dates(meta_texts)
    low_impressions = any((t or "").strip() == LOW_IMPRESSION_TEXT for t in span_texts)
    impressions = parse_impressions(span_texts)
    common = {
        "library_id": library_id,
        "start_date": start_date,
        "end_date": end_date,
        "low_impression_count": low_impressions,
        "impressions": impressions,
    }

    video = card.get("video") or {}
    if video.get("src"):
        return AdRecord(asset_type="video", asset_url=video["src"], thumbnail_url=video.get("poster") or None, **common)

    best = pick_best_image(card.get("images") or [])
    if best:
        return AdRecord(asset_type="image", asset_url=best, thumbnail_url=None, **common)
    return None


def records_from_cards(cards: Iterable[dict[str, Any]]) -> list[AdRecord]:
    records: list[AdRecord] = []
    for card in cards or []:
        record = record_from_card(card)
        if record is not None:
            records.append(record)
    return records


async def extract_ads(page: Page) -> list[AdRecord]:
    """Parse every currently rendered ad card into records, in document order."""

    cards = await page.evaluate(CARD_SNAPSHOT_JS, [AD_CARD_SELECTOR, METADATA_SPAN_SELECTOR])
    return records_from_cards(cards)


async def extract_advertiser_name(page: Page) -> str | None:
    try:
        return await page.evaluate(ADVERTISER_JS, ADVERTISER_SELECTOR)
    except Exception:
        return None


__all__ = [
    "AD_CARD_SELECTOR",
    "CARD_SNAPSHOT_JS",
    "extract_ads",
    "extract_advertiser_name",
    "parse_dates",
    "parse_impressions",
    "parse_library_id",
    "pick_best_image",
    "record_from_card",
    "records_from_cards",
]
