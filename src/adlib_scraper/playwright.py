"""Playwright helpers shared by the harvester and the probes."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Page, async_playwright

from .config import HarvestSettings
from .debug import artifact_path
from .logging import jlog

CONSENT_BUTTON_SELECTOR = (
    'button:has-text("Allow all cookies"), '
    'button:has-text("Accept All"), '
    'button:has-text("Allow essential and optional cookies")'
)
SEE_MORE_SELECTOR = 'button:has-text("See more"), [role="button"]:has-text("See more")'


async def click_if_visible(page: Page, selector: str, *, timeout_ms: int, settle_ms: int = 0) -> bool:
    """Click the first match if it becomes visible within ``timeout_ms``; absence is not an error."""

    try:
        target = page.locator(selector).first
        if await target.is_visible(timeout=timeout_ms):
            await target.click()
            if settle_ms:
                await page.wait_for_timeout(settle_ms)
            return True
    except Exception:
        pass
    return False


async def dismiss_cookie_consent(page: Page, *, timeout_ms: int = 3000) -> bool:
    clicked = await click_if_visible(page, CONSENT_BUTTON_SELECTOR, timeout_ms=timeout_ms, settle_ms=1000)
    if clicked:
        jlog("info", event="cookie_consent_dismissed")
    return clicked


async def cleanup_playwright(context, browser, trace: bool = False, run_id: str = "run") -> None:
    """Stop tracing (if enabled) and close the browser resources."""

    try:
        if trace and context:
            await context.tracing.stop(path=artifact_path("trace", run_id, "zip"))
    except Exception as exc:
        jlog("warning", event="trace_save_failed", run_id=run_id, error=str(exc))
    try:
        if context:
            await context.close()
    except Exception:
        pass
    try:
        if browser:
            await browser.close()
    except Exception:
        pass


CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-features=VizDisplayCompositor",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1440,900",
]


@asynccontextmanager
async def launch_page(settings: HarvestSettings, *, run_id: str = "run") -> AsyncIterator[Page]:
    """Yield a fresh page in its own browser context; resources are released on every exit path."""

    async with async_playwright() as pw:
        browser = None
        context = None
        try:
            browser = await pw.chromium.launch(headless=settings.headless, args=CHROMIUM_LAUNCH_ARGS)
            context = await browser.new_context(
                locale=settings.locale,
                viewport=dict(settings.viewport),
                user_agent=settings.user_agent,
                extra_http_headers=dict(settings.extra_http_headers),
            )
            context.set_default_timeout(settings.nav_timeout_ms)
            if settings.trace:
                await context.tracing.start(screenshots=True, snapshots=True, sources=True)
            yield await context.new_page()
        finally:
            await cleanup_playwright(context, browser, settings.trace, run_id)


__all__ = [
    "CHROMIUM_LAUNCH_ARGS",
    "CONSENT_BUTTON_SELECTOR",
    "SEE_MORE_SELECTOR",
    "cleanup_playwright",
    "click_if_visible",
    "dismiss_cookie_consent",
    "launch_page",
]
