"""Record and run-state types shared across the harvesting pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

AssetType = Literal["image", "video"]


@dataclass(frozen=True, slots=True)
class AdRecord:
    library_id: str
    asset_type: AssetType
    asset_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    low_impression_count: bool = False
    impressions: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation with deterministic key order."""

        return {
            "libraryId": self.library_id,
            "assetType": self.asset_type,
            "assetUrl": self.asset_url,
            "thumbnailUrl": self.thumbnail_url,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "lowImpressionCount": self.low_impression_count,
            "impressions": self.impressions,
        }


@dataclass
class ScrollState:
    collected_count: int = 0
    previous_count: int = 0
    stale_streak: int = 0
    iteration: int = 0


@dataclass(frozen=True, slots=True)
class NetworkCapture:
    url: str
    request_body: str
    response_body: str
    status: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "reqBody": self.request_body, "respSnippet": self.response_body, "status": self.status}


REQUIRED_TOKEN_FIELDS = ("query_id", "csrf_token", "cursor")


@dataclass
class TokenSet:
    """Opaque identifiers needed to replay the internal API.

    Fields are first-seen-wins: :meth:`offer` never overwrites a populated
    value. Only :meth:`advance` moves ``cursor`` forward.
    """

    query_id: Optional[str] = None
    csrf_token: Optional[str] = None
    session_token: Optional[str] = None
    cursor: Optional[str] = None
    collation_token: Optional[str] = None
    session_id: Optional[str] = None
    has_next_page: Optional[bool] = None
    query_id_source: Optional[str] = None

    def offer(self, name: str, value: Any) -> bool:
        if value in (None, "") or getattr(self, name) not in (None, ""):
            return False
        setattr(self, name, value)
        return True

    def advance(self, cursor: str) -> None:
        self.cursor = cursor

    def missing(self) -> list[str]:
        return [name for name in REQUIRED_TOKEN_FIELDS if not getattr(self, name)]

    def summary(self) -> dict[str, Any]:
        """Loggable view that never leaks secret values."""

        return {
            "queryId": self.query_id,
            "queryIdSource": self.query_id_source,
            "hasCsrfToken": bool(self.csrf_token),
            "hasSessionToken": bool(self.session_token),
            "cursor": (self.cursor or "")[:30] or None,
            "hasNextPage": self.has_next_page,
            "hasCollationToken": bool(self.collation_token),
            "hasSessionId": bool(self.session_id),
        }


@dataclass(frozen=True)
class RunResult:
    success: bool
    ads: tuple[AdRecord, ...] = ()
    errors: tuple[str, ...] = ()
    duration_ms: int = 0
    advertiser_name: Optional[str] = None
    diagnostics: tuple[dict[str, Any], ...] = ()
    blocked_requests: tuple[str, ...] = ()
    console_errors: tuple[str, ...] = ()
    total_found: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_found", len(self.ads))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "ads": [ad.to_dict() for ad in self.ads],
            "totalFound": self.total_found,
            "errors": list(self.errors),
            "durationMs": self.duration_ms,
            "advertiserName": self.advertiser_name,
            "diagnostics": list(self.diagnostics),
            "blockedRequests": list(self.blocked_requests),
            "consoleErrors": list(self.console_errors),
        }


__all__ = ["AdRecord", "AssetType", "NetworkCapture", "REQUIRED_TOKEN_FIELDS", "RunResult", "ScrollState", "TokenSet"]
