"""Merge DOM-derived and API-derived records into one ordered, deduplicated list."""

from __future__ import annotations

from typing import Iterable

from .models import AdRecord


def dedupe(records: Iterable[AdRecord]) -> list[AdRecord]:
    """Drop empty and repeated identifiers; the first occurrence wins."""

    seen: set[str] = set()
    out: list[AdRecord] = []
    for record in records:
        if not record.library_id or record.library_id in seen:
            continue
        seen.add(record.library_id)
        out.append(record)
    return out


def merge_records(dom: Iterable[AdRecord], api: Iterable[AdRecord], limit: int | None = None) -> list[AdRecord]:
    merged = dedupe([*dom, *api])
    return merged if limit is None else merged[: max(0, limit)]


__all__ = ["dedupe", "merge_records"]
