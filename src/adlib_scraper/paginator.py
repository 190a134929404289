"""Direct replay of the internal data API from inside the browser's session."""

from __future__ import annotations

import json
import random
import urllib.parse
from typing import Any

from playwright.async_api import Page

from .api_parser import parse_api_page
from .config import Budget, HarvestSettings
from .logging import runlog
from .models import AdRecord, TokenSet

API_ENDPOINT = "/api/graphql/"
PAGE_DELAY_MS = (1000, 2000)
SNIPPET_CHARS = 2000

STOP_LIMIT = "limit_reached"
STOP_NO_CURSOR = "no_next_cursor"
STOP_HTTP = "http_error"
STOP_NO_DATA = "no_ad_data"
STOP_PAGE_CEILING = "page_ceiling"
STOP_BUDGET = "budget_exhausted"
STOP_PARSE = "parse_error"

# Runs in the page so cookies and session headers apply.
FETCH_JS = """
async ({ endpoint, body }) => {
    try {
        const resp = await fetch(endpoint, {
            method: 'POST',
            headers: { 'Content-Type': 'application/x-www-form-urlencoded' },
            body,
            credentials: 'include',
        });
        return { ok: true, status: resp.status, body: await resp.text() };
    } catch (e) {
        return { ok: false, status: 0, body: String(e) };
    }
}
"""


def build_variables(page_id: str, tokens: TokenSet, *, page_size: int, active_status: str = "active") -> dict[str, Any]:
    return {
        "activeStatus": active_status,
        "adType": "ALL",
        "bylines": [],
        "collationToken": tokens.collation_token or "",
        "contentLanguages": [],
        "countries": ["ALL"],
        "cursor": tokens.cursor,
        "excludedIDs": [],
        "first": page_size,
        "mediaType": "ALL",
        "pageIDs": [],
        "potentialReachInput": [],
        "publisherPlatforms": [],
        "queryString": "",
        "regions": [],
        "searchType": "page",
        "sessionID": tokens.session_id or "",
        "sortData": {"mode": "TOTAL_IMPRESSIONS", "direction": "DESCENDING"},
        "source": None,
        "startDate": None,
        "v": "default",
        "viewAllPageID": page_id,
    }


def build_form_body(page_id: str, tokens: TokenSet, *, page_size: int, active_status: str = "active") -> str:
    params = [
        ("doc_id", tokens.query_id or ""),
        ("variables", json.dumps(build_variables(page_id, tokens, page_size=page_size, active_status=active_status), separators=(",", ":"))),
        ("fb_dtsg", tokens.csrf_token or ""),
    ]
    if tokens.session_token:
        params.append(("lsd", tokens.session_token))
    return urllib.parse.urlencode(params)


class DirectApiPaginator:
    def __init__(
        self,
        page: Page,
        *,
        page_id: str,
        tokens: TokenSet,
        settings: HarvestSettings,
        budget: Budget,
        diagnostics: list[dict[str, Any]],
        rng: random.Random | None = None,
    ) -> None:
        self.page = page
        self.page_id = page_id
        self.tokens = tokens
        self.settings = settings
        self.budget = budget
        self.diagnostics = diagnostics
        self._rng = rng or random.Random()
        self.pages_fetched = 0
        self.stop_reason: str | None = None

    def _stop(self, reason: str, collected: int, **extra: Any) -> None:
        self.stop_reason = reason
        self.diagnostics.append({"label": "fallback-stopped", "reason": reason, "pages": self.pages_fetched, "collected": collected, **extra})
        runlog("fallback_stopped", page_id=self.page_id, reason=reason, pages=self.pages_fetched, collected=collected)

    async def run(self, known_ids: set[str], wanted: int) -> list[AdRecord]:
        """Collect up to ``wanted`` records whose ids are not in ``known_ids``."""

        missing = self.tokens.missing()
        if missing:
            self.diagnostics.append(
                {
                    "label": "fallback-missing-tokens",
                    "missing": missing,
                    "hasCursor": bool(self.tokens.cursor),
                    "hasCsrfToken": bool(self.tokens.csrf_token),
                    "hasQueryId": bool(self.tokens.query_id),
                }
            )
            runlog("fallback_missing_tokens", page_id=self.page_id, level="warning", missing=missing)
            self.stop_reason = "missing_tokens"
            return []

        collected: list[AdRecord] = []
        seen = set(known_ids)
        runlog("fallback_engaged", page_id=self.page_id, query_id=self.tokens.query_id, wanted=wanted)

        while True:
            if len(collected) >= wanted:
                self._stop(STOP_LIMIT, len(collected))
                break
            if not self.tokens.cursor:
                self._stop(STOP_NO_CURSOR, len(collected))
                break
            if self.pages_fetched >= self.settings.api_page_ceiling:
                self._stop(STOP_PAGE_CEILING, len(collected))
                break
            if self.budget.expired():
                self._stop(STOP_BUDGET, len(collected))
                break

            self.pages_fetched += 1
            body = build_form_body(
                self.page_id,
                self.tokens,
                page_size=self.settings.api_page_size,
                active_status=self.settings.active_status,
            )
            result = await self.page.evaluate(FETCH_JS, {"endpoint": API_ENDPOINT, "body": body}) or {}
            status = int(result.get("status") or 0)
            text = str(result.get("body") or "")
            if not result.get("ok") or status != 200:
                self._stop(STOP_HTTP, len(collected), status=status, snippet=text[:1000])
                break

            try:
                parsed = parse_api_page(text, skip_ids=seen)
            except Exception as exc:
                self._stop(STOP_PARSE, len(collected), error=str(exc), snippet=text[:SNIPPET_CHARS])
                break
            runlog(
                "fallback_page",
                page_id=self.page_id,
                api_page=self.pages_fetched,
                chars=len(text),
                has_ad_data=parsed.has_ad_data,
                has_next_cursor=bool(parsed.next_cursor),
                ids=len(parsed.ad_ids),
                new=len(parsed.records),
            )
            if not parsed.has_ad_data:
                self._stop(STOP_NO_DATA, len(collected), snippet=text[:SNIPPET_CHARS])
                break

            for record in parsed.records:
                if record.library_id in seen or len(collected) >= wanted:
                    continue
                seen.add(record.library_id)
                collected.append(record)

            if not parsed.next_cursor:
                self.tokens.has_next_page = False
                self._stop(STOP_NO_CURSOR, len(collected))
                break
            self.tokens.advance(parsed.next_cursor)
            if len(collected) < wanted:
                await self.page.wait_for_timeout(self._rng.randint(*PAGE_DELAY_MS))

        return collected


__all__ = [
    "API_ENDPOINT",
    "DirectApiPaginator",
    "FETCH_JS",
    "STOP_BUDGET",
    "STOP_HTTP",
    "STOP_LIMIT",
    "STOP_NO_CURSOR",
    "STOP_NO_DATA",
    "STOP_PARSE",
    "STOP_PAGE_CEILING",
    "build_form_body",
    "build_variables",
]
