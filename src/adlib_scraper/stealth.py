"""Environment overrides that mask the automated browser before site scripts run."""

from __future__ import annotations

from typing import Mapping

from playwright.async_api import Page

from .logging import jlog

# One entry per spoofed signal; the combined script is installed as an init script.
STEALTH_OVERRIDES: dict[str, str] = {
    "webdriver": "Object.defineProperty(navigator, 'webdriver', { get: () => false });",
    "languages": "Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });",
    "platform": "Object.defineProperty(navigator, 'platform', { get: () => 'Linux x86_64' });",
    "hardware_concurrency": "Object.defineProperty(navigator, 'hardwareConcurrency', { get: () => 8 });",
    "device_memory": "Object.defineProperty(navigator, 'deviceMemory', { get: () => 8 });",
    "max_touch_points": "Object.defineProperty(navigator, 'maxTouchPoints', { get: () => 0 });",
    "plugins": """
        Object.defineProperty(navigator, 'plugins', {
            get: () => {
                const arr = [
                    { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer', description: 'Portable Document Format', length: 1 },
                    { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai', description: '', length: 1 },
                    { name: 'Native Client', filename: 'internal-nacl-plugin', description: '', length: 1 },
                ];
                return Object.assign(arr, {
                    namedItem: (name) => arr.find(p => p.name === name) || null,
                    refresh: () => {},
                });
            },
        });
    """,
    "chrome_runtime": """
        window.chrome = {
            runtime: { connect: () => {}, sendMessage: () => {}, id: undefined },
            loadTimes: () => ({}),
            csi: () => ({}),
        };
    """,
    "permissions": """
        if (navigator.permissions && navigator.permissions.query) {
            const origQuery = navigator.permissions.query.bind(navigator.permissions);
            navigator.permissions.query = (params) =>
                params && params.name === 'notifications'
                    ? Promise.resolve({ state: Notification.permission })
                    : origQuery(params);
        }
    """,
    "webgl_vendor": """
        for (const ctx of [window.WebGLRenderingContext, window.WebGL2RenderingContext]) {
            if (!ctx) continue;
            const getParam = ctx.prototype.getParameter;
            ctx.prototype.getParameter = function (p) {
                if (p === 37445) return 'Intel Inc.';
                if (p === 37446) return 'Intel Iris OpenGL Engine';
                return getParam.call(this, p);
            };
        }
    """,
    "connection": """
        Object.defineProperty(navigator, 'connection', {
            get: () => ({ effectiveType: '4g', rtt: 50, downlink: 10, saveData: false }),
        });
    """,
}


def build_stealth_script(overrides: Mapping[str, str] | None = None, *, only: set[str] | None = None) -> str:
    """Combine overrides into one script; each runs in its own try block so one failure skips only that signal."""

    source = STEALTH_OVERRIDES if overrides is None else overrides
    blocks = []
    for signal, body in source.items():
        if only is not None and signal not in only:
            continue
        blocks.append(f"// {signal}\ntry {{\n{body.strip()}\n}} catch (e) {{}}")
    return "(() => {\n" + "\n".join(blocks) + "\n})();"


async def apply_stealth(page: Page, *, only: set[str] | None = None) -> bool:
    """Install the overrides before any page script runs. Returns False if injection failed."""

    try:
        await page.add_init_script(build_stealth_script(only=only))
        return True
    except Exception as exc:
        jlog("warning", event="stealth_injection_failed", error=str(exc))
        return False


__all__ = ["STEALTH_OVERRIDES", "apply_stealth", "build_stealth_script"]
