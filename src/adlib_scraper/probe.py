"""One-shot diagnostic probes: a viewport screenshot and an infinite-scroll check.

Neither probe produces ad records. Both run in their own browser context and
raise on failure; the HTTP layer maps exceptions to error responses.
"""

from __future__ import annotations

import base64
import dataclasses
from collections import Counter
from typing import Any

from .config import Budget, HarvestSettings
from .extract import AD_CARD_SELECTOR
from .intercept import TrafficInterceptor
from .logging import jlog
from .playwright import dismiss_cookie_consent, launch_page
from .session import SessionFactory, wait_for_hydration
from .stealth import apply_stealth
from .telemetry import snapshot
from .urls import build_library_url

SCREENSHOT_QUALITY = 80
DIAGNOSE_SCREENSHOT_QUALITY = 70
SCREENSHOT_NAV_TIMEOUT_MS = 30_000
DIAGNOSE_SETTLE_MS = 5000
SCROLL_TEST_WAIT_MS = 5000
# Cards rendered by the first server batch; growth from zero must exceed it.
INITIAL_BATCH_CARDS = 25
CONSOLE_TAIL = 50

VERDICT_WORKING = "INFINITE_SCROLL_WORKING"
VERDICT_BROKEN = "INFINITE_SCROLL_BROKEN"

JS_STATE_JS = """
() => {
    const scripts = Array.from(document.querySelectorAll('script[src]'));
    const viewport = document.querySelector('meta[name="viewport"]');
    return {
        totalScripts: scripts.length,
        scriptSrcs: scripts.slice(0, 20).map(s => (s.getAttribute('src') || '').substring(0, 100)),
        hasFbJs: scripts.some(s => (s.getAttribute('src') || '').includes('rsrc.php')),
        bodyClassCount: document.body.className.split(' ').length,
        htmlLang: document.documentElement.lang,
        metaViewport: viewport ? viewport.getAttribute('content') : null,
    };
}
"""

CARD_COUNT_JS = "(sel) => ({ cards: document.querySelectorAll(sel).length, height: document.body.scrollHeight })"
SMOOTH_TO_BOTTOM_JS = "() => window.scrollTo({ top: document.body.scrollHeight, behavior: 'smooth' })"


def classify_scroll_test(pre: dict[str, int], post: dict[str, int]) -> dict[str, Any]:
    """Summarize one scroll attempt; growth from an empty page must beat the initial batch."""

    pre_cards, post_cards = int(pre.get("cards") or 0), int(post.get("cards") or 0)
    pre_height, post_height = int(pre.get("height") or 0), int(post.get("height") or 0)
    working = post_cards > pre_cards if pre_cards > 0 else post_cards > INITIAL_BATCH_CARDS
    return {
        "preScrollAds": pre_cards,
        "postScrollAds": post_cards,
        "preScrollHeight": pre_height,
        "postScrollHeight": post_height,
        "newAdsLoaded": post_cards - pre_cards,
        "heightGrew": post_height > pre_height,
        "verdict": VERDICT_WORKING if working else VERDICT_BROKEN,
    }


def summarize_network(log: list[dict[str, Any]]) -> dict[str, Any]:
    by_type = Counter(str(e.get("type")) for e in log)
    by_status = Counter(str(e.get("status")) for e in log)
    return {"total": len(log), "byType": dict(by_type), "byStatus": dict(by_status)}


def _factory(page_id: str, session_factory: SessionFactory | None) -> SessionFactory:
    return session_factory or (lambda settings: launch_page(settings, run_id=page_id))


async def take_screenshot(
    page_id: str,
    *,
    settings: HarvestSettings | None = None,
    session_factory: SessionFactory | None = None,
) -> dict[str, Any]:
    settings = settings or dataclasses.replace(HarvestSettings(), wait_until="domcontentloaded", nav_timeout_ms=SCREENSHOT_NAV_TIMEOUT_MS)
    async with _factory(page_id, session_factory)(settings) as page:
        await apply_stealth(page, only={"webdriver"})
        await page.goto(
            build_library_url(page_id, active_status=settings.active_status),
            wait_until=settings.wait_until,
            timeout=settings.nav_timeout_ms,
        )
        await dismiss_cookie_consent(page, timeout_ms=settings.consent_timeout_ms)
        await wait_for_hydration(page, settings, Budget(settings.budget_s), page_id=page_id)
        diag = await snapshot(page, "screenshot")
        image = await page.screenshot(type="jpeg", quality=SCREENSHOT_QUALITY, full_page=False)
    jlog("info", event="screenshot_taken", page_id=page_id, bytes=len(image))
    return {"screenshot": base64.b64encode(image).decode("ascii"), "diagnostics": diag}


async def diagnose(
    page_id: str,
    *,
    settings: HarvestSettings | None = None,
    session_factory: SessionFactory | None = None,
) -> dict[str, Any]:
    """Load the page, try one scroll, and report what the browser saw."""

    settings = settings or HarvestSettings()
    interceptor = TrafficInterceptor(record_all=True)
    async with _factory(page_id, session_factory)(settings) as page:
        await apply_stealth(page)
        interceptor.attach(page)
        await page.goto(
            build_library_url(page_id, active_status=settings.active_status),
            wait_until=settings.wait_until,
            timeout=settings.nav_timeout_ms,
        )
        await dismiss_cookie_consent(page, timeout_ms=settings.consent_timeout_ms)
        await page.wait_for_timeout(DIAGNOSE_SETTLE_MS)

        page_diag = await snapshot(page, "diagnose")
        js_state = await page.evaluate(JS_STATE_JS)
        pre = await page.evaluate(CARD_COUNT_JS, AD_CARD_SELECTOR)
        await page.evaluate(SMOOTH_TO_BOTTOM_JS)
        await page.wait_for_timeout(SCROLL_TEST_WAIT_MS)
        post = await page.evaluate(CARD_COUNT_JS, AD_CARD_SELECTOR)
        scroll_test = classify_scroll_test(pre or {}, post or {})
        jlog("info", event="scroll_test", page_id=page_id, **scroll_test)
        image = await page.screenshot(type="jpeg", quality=DIAGNOSE_SCREENSHOT_QUALITY, full_page=False)

    return {
        "pageDiagnostics": page_diag,
        "scrollTest": scroll_test,
        "jsState": js_state,
        "networkSummary": summarize_network(interceptor.network_log),
        "apiCalls": interceptor.api_calls,
        "consoleMessages": interceptor.console_messages[-CONSOLE_TAIL:],
        "fullNetworkLog": list(interceptor.network_log),
        "screenshot": base64.b64encode(image).decode("ascii"),
    }


__all__ = ["VERDICT_BROKEN", "VERDICT_WORKING", "classify_scroll_test", "diagnose", "summarize_network", "take_screenshot"]
