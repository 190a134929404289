"""Debug artifacts (page HTML, Playwright traces) written under ``media/debug``."""

from __future__ import annotations

import os
import re

from playwright.async_api import Page

from .logging import jlog

DEBUG_DIR = os.getenv("ADLIB_DEBUG_DIR", "media/debug")
_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def ensure_debug_dir() -> str:
    try:
        os.makedirs(DEBUG_DIR, exist_ok=True)
    except OSError as exc:
        jlog("warning", event="debug_dir_unavailable", path=DEBUG_DIR, error=str(exc))
    return DEBUG_DIR


def artifact_path(kind: str, run_id: str, ext: str) -> str:
    """``<DEBUG_DIR>/<kind>_<run_id>.<ext>`` with the run id made filesystem-safe."""

    safe_id = _UNSAFE.sub("-", run_id).strip("-") or "run"
    return os.path.join(ensure_debug_dir(), f"{kind}_{safe_id}.{ext}")


async def ensure_debug_html(page: Page, run_id: str, label: str = "page") -> str | None:
    """Persist the current page HTML; returns the path, or ``None`` if it could not be written."""

    try:
        path = artifact_path(label, run_id, "html")
        html = await page.content()
        with open(path, "w", encoding="utf-8") as f:
            f.write(html)
        jlog("info", event="debug_html_saved", path=path, chars=len(html))
        return path
    except Exception as exc:  # pragma: no cover - logging only
        jlog("error", event="debug_save_html_error", run_id=run_id, error=str(exc))
        return None


__all__ = ["DEBUG_DIR", "artifact_path", "ensure_debug_dir", "ensure_debug_html"]
