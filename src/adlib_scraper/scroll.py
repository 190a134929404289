"""Scroll-driven lazy loading and the staleness state machine."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from playwright.async_api import Page

from .config import Budget, HarvestSettings
from .extract import extract_ads
from .intercept import TrafficInterceptor
from .logging import runlog
from .models import AdRecord, ScrollState
from .playwright import SEE_MORE_SELECTOR, click_if_visible
from .telemetry import snapshot


class ScrollPhase(str, Enum):
    SCROLLING = "scrolling"
    SETTLING = "settling"
    EVALUATING = "evaluating"
    STALLED = "stalled"
    STALLED_LOW_YIELD = "stalled-low-yield"
    DONE = "done"


TERMINAL_PHASES = frozenset({ScrollPhase.STALLED, ScrollPhase.STALLED_LOW_YIELD, ScrollPhase.DONE})

SCROLL_METRICS_JS = "() => ({ scrollHeight: document.body.scrollHeight, scrollY: window.scrollY, innerHeight: window.innerHeight })"
JUMP_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"
SMOOTH_SCROLL_JS = "(top) => window.scrollTo({ top, behavior: 'smooth' })"

SMOOTH_VIEWPORTS = 2
SMOOTH_SETTLE_MS = (2500, 5000)
NEAR_BOTTOM_EXTRA_WAIT_MS = 2000
AFTER_JUMP_WAIT_MS = 1000
SEE_MORE_SETTLE_MS = 2000


@dataclass
class ScrollOutcome:
    phase: ScrollPhase
    reason: str
    records: list[AdRecord] = field(default_factory=list)
    state: ScrollState = field(default_factory=ScrollState)


def evaluate_progress(state: ScrollState, new_count: int, *, limit: int, settings: HarvestSettings) -> ScrollPhase:
    """Fold one extraction result into ``state`` and return the next phase."""

    if new_count > state.previous_count:
        state.stale_streak = 0
    else:
        state.stale_streak += 1
    state.collected_count = new_count
    state.previous_count = new_count

    if new_count >= limit:
        return ScrollPhase.DONE
    if state.stale_streak >= settings.max_stale_scrolls:
        return ScrollPhase.STALLED
    early = settings.early_fallback_streak
    if early is not None and state.stale_streak >= early and new_count <= settings.low_yield_threshold:
        return ScrollPhase.STALLED_LOW_YIELD
    return ScrollPhase.SCROLLING


class ScrollController:
    """Drive the viewport until collection plateaus, the limit is met, or the budget runs out."""

    def __init__(
        self,
        page: Page,
        *,
        limit: int,
        settings: HarvestSettings,
        budget: Budget,
        diagnostics: list[dict[str, Any]],
        interceptor: TrafficInterceptor | None = None,
        page_id: str = "",
        extract: Callable[[Page], Awaitable[list[AdRecord]]] = extract_ads,
        take_snapshot: Callable[[Page, str], Awaitable[dict[str, Any]]] = snapshot,
        rng: random.Random | None = None,
    ) -> None:
        self.page = page
        self.limit = limit
        self.settings = settings
        self.budget = budget
        self.diagnostics = diagnostics
        self.interceptor = interceptor
        self.page_id = page_id
        self._extract = extract
        self._snapshot = take_snapshot
        self._rng = rng or random.Random()
        self.state = ScrollState()
        self.phase = ScrollPhase.SCROLLING
        self._records: dict[str, AdRecord] = {}
        self._stale_reported = False

    @property
    def records(self) -> list[AdRecord]:
        return list(self._records.values())

    def absorb(self, records: list[AdRecord]) -> int:
        """Add newly seen records in discovery order and return the running count."""

        for record in records:
            if record.library_id and record.library_id not in self._records:
                self._records[record.library_id] = record
        return len(self._records)

    async def _metrics(self) -> dict[str, Any]:
        return await self.page.evaluate(SCROLL_METRICS_JS) or {}

    async def _scroll(self, before: dict[str, Any]) -> None:
        if self.settings.scroll_mode == "smooth":
            viewport = int(before.get("innerHeight") or 0)
            height = int(before.get("scrollHeight") or 0)
            target = min(int(before.get("scrollY") or 0) + viewport * SMOOTH_VIEWPORTS, height)
            await self.page.evaluate(SMOOTH_SCROLL_JS, target)
            await self.page.wait_for_timeout(self._rng.randint(*SMOOTH_SETTLE_MS))
            after = await self._metrics()
            remaining = int(after.get("scrollHeight") or 0) - int(after.get("scrollY") or 0) - int(after.get("innerHeight") or 0)
            if remaining < self.settings.near_bottom_px:
                await self.page.wait_for_timeout(NEAR_BOTTOM_EXTRA_WAIT_MS)
                await self.page.evaluate(JUMP_TO_BOTTOM_JS)
                await self.page.wait_for_timeout(AFTER_JUMP_WAIT_MS)
        else:
            await self.page.evaluate(JUMP_TO_BOTTOM_JS)

    async def _settle(self) -> None:
        self.phase = ScrollPhase.SETTLING
        clicked = await click_if_visible(
            self.page,
            SEE_MORE_SELECTOR,
            timeout_ms=self.settings.see_more_timeout_ms,
            settle_ms=SEE_MORE_SETTLE_MS,
        )
        if clicked:
            runlog("see_more_clicked", page_id=self.page_id, iteration=self.state.iteration)
        if self.settings.scroll_mode == "jump":
            await self.page.wait_for_timeout(self.settings.scroll_delay_ms)

    async def _on_first_stale(self) -> None:
        self.diagnostics.append(await self._snapshot(self.page, "first-stale-scroll"))
        if self.interceptor is not None:
            self.diagnostics.append({"label": "first-stale-network", "recentRequests": self.interceptor.recent_requests(5)})

    async def run(self, initial: list[AdRecord] | None = None) -> ScrollOutcome:
        count = self.absorb(initial or [])
        self.state.collected_count = self.state.previous_count = count
        if count >= self.limit:
            return ScrollOutcome(ScrollPhase.DONE, "limit", self.records, self.state)

        while True:
            if self.budget.expired():
                runlog("scroll_budget_exhausted", page_id=self.page_id, level="warning", collected=self.state.collected_count)
                self.phase = ScrollPhase.DONE
                return ScrollOutcome(self.phase, "budget", self.records, self.state)

            self.phase = ScrollPhase.SCROLLING
            self.state.iteration += 1
            captures_before = len(self.interceptor.captures) if self.interceptor else 0
            before = await self._metrics()
            await self._scroll(before)
            await self._settle()

            self.phase = ScrollPhase.EVALUATING
            after = await self._metrics()
            count = self.absorb(await self._extract(self.page))
            previous = self.state.previous_count
            self.phase = evaluate_progress(self.state, count, limit=self.limit, settings=self.settings)
            runlog(
                "scroll_iteration",
                page_id=self.page_id,
                iteration=self.state.iteration,
                collected=count,
                previous=previous,
                stale=self.state.stale_streak,
                max_stale=self.settings.max_stale_scrolls,
                height=[before.get("scrollHeight"), after.get("scrollHeight")],
                pos=[before.get("scrollY"), after.get("scrollY")],
                new_api_captures=(len(self.interceptor.captures) - captures_before) if self.interceptor else None,
            )
            if self.state.stale_streak == 1 and not self._stale_reported:
                self._stale_reported = True
                await self._on_first_stale()

            if self.phase in TERMINAL_PHASES:
                reason = {
                    ScrollPhase.DONE: "limit",
                    ScrollPhase.STALLED: "stale",
                    ScrollPhase.STALLED_LOW_YIELD: "early-stale",
                }[self.phase]
                runlog("scroll_finished", page_id=self.page_id, phase=self.phase.value, reason=reason, collected=count)
                return ScrollOutcome(self.phase, reason, self.records, self.state)


__all__ = ["ScrollController", "ScrollOutcome", "ScrollPhase", "evaluate_progress"]
