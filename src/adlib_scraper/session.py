"""Session orchestration: one run, one browser context, one ordered result.

Phases run strictly in sequence::

    launching -> navigating -> consent-handling -> hydrating
              -> extracting -> [fallback] -> finalizing

Cheap DOM polling is tried first; the direct API replay is engaged only
through the ``stalled-low-yield -> fallback-engaged`` transition.
"""

from __future__ import annotations

import time
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any, Callable

from playwright.async_api import Page

from .config import Budget, HarvestSettings, clamp_limit
from .debug import ensure_debug_html
from .extract import extract_ads, extract_advertiser_name
from .intercept import TrafficInterceptor
from .logging import logging_context, runlog
from .merge import merge_records
from .models import AdRecord, RunResult
from .paginator import DirectApiPaginator
from .playwright import dismiss_cookie_consent, launch_page
from .scroll import ScrollController, ScrollOutcome, ScrollPhase
from .stealth import apply_stealth
from .telemetry import blocking_signals, hydration_state, snapshot
from .tokens import collect_script_text, derive_tokens
from .urls import build_library_url

SessionFactory = Callable[[HarvestSettings], AbstractAsyncContextManager[Page]]

FALLBACK_TRANSITION = ("stalled-low-yield", "fallback-engaged")
STALLED_PHASES = frozenset({ScrollPhase.STALLED, ScrollPhase.STALLED_LOW_YIELD})


class Phase(str, Enum):
    LAUNCHING = "launching"
    NAVIGATING = "navigating"
    CONSENT = "consent-handling"
    HYDRATING = "hydrating"
    EXTRACTING = "extracting"
    FALLBACK = "fallback"
    FINALIZING = "finalizing"


class NavigationError(RuntimeError):
    """The library document could not be loaded."""


def should_engage_fallback(outcome: ScrollOutcome, *, collected: int, limit: int, settings: HarvestSettings) -> bool:
    """``stalled-low-yield -> fallback-engaged``: scrolling plateaued with very few records."""

    return (
        settings.fallback_enabled
        and outcome.phase in STALLED_PHASES
        and collected < limit
        and collected <= settings.low_yield_threshold
    )


async def wait_for_hydration(page: Page, settings: HarvestSettings, budget: Budget, *, page_id: str = "") -> bool:
    """Poll until at least one ad card is rendered and no spinner remains."""

    for i in range(settings.hydration_polls):
        if budget.expired():
            return False
        try:
            state = await hydration_state(page) or {}
        except Exception as exc:
            runlog("hydration_probe_failed", page_id=page_id, level="warning", error=str(exc))
            state = {}
        ads = int(state.get("adCount") or 0)
        spinner = bool(state.get("hasSpinner"))
        if ads > 0 and not spinner:
            runlog("hydration_complete", page_id=page_id, check=i, ads=ads)
            return True
        if i % 5 == 0:
            runlog("hydration_check", page_id=page_id, check=i, ads=ads, spinner=spinner)
        await page.wait_for_timeout(settings.hydration_interval_ms)
    return False


def _default_factory(page_id: str) -> SessionFactory:
    return lambda settings: launch_page(settings, run_id=page_id)


class HarvestSession:
    """State and phase sequence for a single harvesting run."""

    def __init__(self, page_id: str, limit: int, settings: HarvestSettings, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.page_id = page_id
        self.limit = limit
        self.settings = settings
        self.url = build_library_url(page_id, active_status=settings.active_status)
        self.budget = Budget(settings.budget_s, clock=clock)
        self.interceptor = TrafficInterceptor(body_cap=settings.capture_body_cap)
        self.diagnostics: list[dict[str, Any]] = []
        self.advertiser_name: str | None = None
        self.phase = Phase.LAUNCHING

    def _enter(self, phase: Phase, **kw: Any) -> None:
        self.phase = phase
        runlog("phase", page_id=self.page_id, phase=phase.value, elapsed_ms=self.budget.elapsed_ms(), **kw)

    async def _navigate(self, page: Page) -> None:
        self._enter(Phase.NAVIGATING, url=self.url)
        response = await page.goto(self.url, wait_until=self.settings.wait_until, timeout=self.settings.nav_timeout_ms)
        status = response.status if response is not None else None
        if status is not None and status >= 400:
            raise NavigationError(f"Navigation to {self.url} failed with HTTP {status}")

    async def _hydrate(self, page: Page) -> None:
        self._enter(Phase.HYDRATING)
        hydrated = await wait_for_hydration(page, self.settings, self.budget, page_id=self.page_id)
        if not hydrated:
            self.diagnostics.append(
                {
                    "label": "hydration-timeout",
                    "polls": self.settings.hydration_polls,
                    "intervalMs": self.settings.hydration_interval_ms,
                }
            )
            runlog("hydration_timeout", page_id=self.page_id, level="warning")
        await page.wait_for_timeout(self.settings.post_hydration_settle_ms)

        after_load = await snapshot(page, "after-initial-load")
        self.diagnostics.append(after_load)
        signals = blocking_signals(after_load)
        if signals:
            self.diagnostics.append({"label": "blocking-signals", "signals": signals})
            runlog("blocking_signals", page_id=self.page_id, level="warning", signals=signals)

    async def _fallback(self, page: Page, dom_records: list[AdRecord]) -> list[AdRecord]:
        self._enter(Phase.FALLBACK, transition="->".join(FALLBACK_TRANSITION), collected=len(dom_records))
        script_text = await collect_script_text(page)
        tokens = derive_tokens(self.interceptor.captures, script_text)
        self.diagnostics.append({"label": "fallback-tokens", "capturedCalls": len(self.interceptor.captures), **tokens.summary()})
        self.diagnostics.append({"label": "fallback-api-traffic", "traffic": [c.to_dict() for c in self.interceptor.captures]})
        paginator = DirectApiPaginator(
            page,
            page_id=self.page_id,
            tokens=tokens,
            settings=self.settings,
            budget=self.budget,
            diagnostics=self.diagnostics,
        )
        known = {r.library_id for r in dom_records}
        return await paginator.run(known, self.limit - len(dom_records))

    async def run(self, page: Page) -> RunResult:
        await apply_stealth(page)
        self.interceptor.attach(page)

        await self._navigate(page)
        self._enter(Phase.CONSENT)
        await dismiss_cookie_consent(page, timeout_ms=self.settings.consent_timeout_ms)
        await self._hydrate(page)
        if self.settings.debug_html:
            await ensure_debug_html(page, self.page_id, label="after_load")

        self.advertiser_name = await extract_advertiser_name(page)
        if self.advertiser_name:
            runlog("advertiser_resolved", page_id=self.page_id, advertiser=self.advertiser_name)

        self._enter(Phase.EXTRACTING)
        initial = await extract_ads(page)
        runlog("initial_extraction", page_id=self.page_id, ads=len(initial))
        controller = ScrollController(
            page,
            limit=self.limit,
            settings=self.settings,
            budget=self.budget,
            diagnostics=self.diagnostics,
            interceptor=self.interceptor,
            page_id=self.page_id,
        )
        outcome = await controller.run(initial)
        dom_records = outcome.records

        api_records: list[AdRecord] = []
        if should_engage_fallback(outcome, collected=len(dom_records), limit=self.limit, settings=self.settings):
            api_records = await self._fallback(page, dom_records)

        self._enter(Phase.FINALIZING, dom=len(dom_records), api=len(api_records))
        ads = merge_records(dom_records, api_records, self.limit)
        self.diagnostics.append(await snapshot(page, "after-scrape-complete"))
        if self.interceptor.page_errors:
            self.diagnostics.append({"label": "page-errors", "errors": list(self.interceptor.page_errors)})
        if self.interceptor.blocked:
            runlog("blocked_requests", page_id=self.page_id, level="warning", blocked=self.interceptor.blocked)
        return self.result(True, ads)

    def result(self, success: bool, ads: list[AdRecord] | None = None, errors: list[str] | None = None) -> RunResult:
        return RunResult(
            success=success,
            ads=tuple(ads or ()),
            errors=tuple(errors or ()),
            duration_ms=self.budget.elapsed_ms(),
            advertiser_name=self.advertiser_name if success else None,
            diagnostics=tuple(self.diagnostics),
            blocked_requests=tuple(self.interceptor.blocked),
            console_errors=tuple(self.interceptor.console_errors),
        )


async def harvest(
    page_id: str,
    limit: int | None = None,
    *,
    settings: HarvestSettings | None = None,
    session_factory: SessionFactory | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> RunResult:
    """Run one harvest. Never raises: failures come back as ``success=False``."""

    settings = settings or HarvestSettings()
    effective_limit = clamp_limit(limit)
    session = HarvestSession(page_id, effective_limit, settings, clock=clock)
    factory = session_factory or _default_factory(page_id)

    with logging_context(page_id=page_id, limit=effective_limit, scroll_mode=settings.scroll_mode):
        runlog("run_start", page_id=page_id, requested_limit=limit, limit=effective_limit)
        try:
            session._enter(Phase.LAUNCHING)
            async with factory(settings) as page:
                result = await session.run(page)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            runlog("run_failed", page_id=page_id, level="error", phase=session.phase.value, error=message)
            return session.result(False, errors=[message])
        runlog(
            "run_complete",
            page_id=page_id,
            ads=result.total_found,
            duration_ms=result.duration_ms,
            blocked=len(result.blocked_requests),
            console_errors=len(result.console_errors),
        )
        return result


__all__ = ["FALLBACK_TRANSITION", "HarvestSession", "NavigationError", "Phase", "harvest", "should_engage_fallback", "wait_for_hydration"]
