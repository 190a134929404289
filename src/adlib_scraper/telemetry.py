"""Read-only page telemetry used for decisions and post-hoc diagnostics."""

from __future__ import annotations

from typing import Any

from playwright.async_api import Page

from .extract import AD_CARD_SELECTOR
from .logging import jlog

TELEMETRY_JS = """
(cardSel) => {
    const body = document.body;
    const pageText = (body && body.innerText) || '';
    const buttons = Array.from(document.querySelectorAll('button, [role="button"]'));
    const seeMore = buttons.find(b => /see more|load more|show more/i.test(b.textContent || ''));
    const divs = Array.from(document.querySelectorAll('div'));
    return {
        scrollHeight: body ? body.scrollHeight : 0,
        clientHeight: document.documentElement.clientHeight,
        scrollY: window.scrollY,
        adContainerCount: document.querySelectorAll(cardSel).length,
        hasRateLimit: pageText.includes('rate limit') || pageText.includes('Rate limit'),
        hasCaptcha: !!document.querySelector('iframe[src*="captcha"]') || pageText.includes('CAPTCHA'),
        hasLoginWall: pageText.includes('Log in') && pageText.includes('Create new account'),
        hasErrorMessage: pageText.includes('Something went wrong') || pageText.includes("content isn't available"),
        hasLoadingSpinner: divs.some(d => d.getAttribute('role') === 'progressbar'
            || (typeof d.className === 'string' && d.className.includes('loading'))),
        hasSeeMoreButton: seeMore ? (seeMore.textContent || '').trim() : null,
        title: document.title,
        url: window.location.href,
    };
}
"""

HYDRATION_JS = """
(cardSel) => {
    const divs = Array.from(document.querySelectorAll('div'));
    return {
        adCount: document.querySelectorAll(cardSel).length,
        hasSpinner: divs.some(d => d.getAttribute('role') === 'progressbar'
            || (typeof d.className === 'string' && d.className.includes('loading'))),
    };
}
"""

BLOCKING_SIGNALS = ("hasCaptcha", "hasLoginWall", "hasRateLimit", "hasErrorMessage")


async def snapshot(page: Page, label: str) -> dict[str, Any]:
    """Return a labeled telemetry record; failures are captured, never raised."""

    try:
        data = await page.evaluate(TELEMETRY_JS, AD_CARD_SELECTOR)
        diag = {"label": label, **(data or {})}
        jlog("info", event="telemetry", **diag)
        return diag
    except Exception as exc:
        jlog("warning", event="telemetry_failed", label=label, error=str(exc))
        return {"label": label, "error": str(exc)}


async def hydration_state(page: Page) -> dict[str, Any]:
    return await page.evaluate(HYDRATION_JS, AD_CARD_SELECTOR)


def blocking_signals(diag: dict[str, Any]) -> list[str]:
    """Names of anti-automation signals present in a snapshot (reported, never acted on)."""

    return [name for name in BLOCKING_SIGNALS if diag.get(name)]


__all__ = ["TELEMETRY_JS", "blocking_signals", "hydration_state", "snapshot"]
