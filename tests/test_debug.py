import pytest

from adlib_scraper import debug
from adlib_scraper.playwright import CONSENT_BUTTON_SELECTOR, cleanup_playwright, dismiss_cookie_consent

from conftest import FakePage


def test_artifact_path_sanitizes_run_id(tmp_path, monkeypatch):
    monkeypatch.setattr(debug, "DEBUG_DIR", str(tmp_path / "dbg"))
    path = debug.artifact_path("trace", "123/../x y", "zip")
    assert path == str(tmp_path / "dbg" / "trace_123-..-x-y.zip")
    assert (tmp_path / "dbg").is_dir()


@pytest.mark.asyncio
async def test_ensure_debug_html_writes_page_content(tmp_path, monkeypatch):
    monkeypatch.setattr(debug, "DEBUG_DIR", str(tmp_path))
    page = FakePage()
    page.html = "<html>ads</html>"
    path = await debug.ensure_debug_html(page, "123", label="after_load")
    assert path == str(tmp_path / "after_load_123.html")
    assert (tmp_path / "after_load_123.html").read_text(encoding="utf-8") == "<html>ads</html>"


class Closable:
    def __init__(self, fail=False):
        self.closed = False
        self.fail = fail

    async def close(self):
        if self.fail:
            raise RuntimeError("already closed")
        self.closed = True


@pytest.mark.asyncio
async def test_cleanup_closes_browser_even_if_context_close_fails():
    context, browser = Closable(fail=True), Closable()
    await cleanup_playwright(context, browser)
    assert browser.closed is True


@pytest.mark.asyncio
async def test_consent_dialog_is_optional():
    page = FakePage()
    assert await dismiss_cookie_consent(page, timeout_ms=10) is False
    page.visible.add(CONSENT_BUTTON_SELECTOR)
    assert await dismiss_cookie_consent(page, timeout_ms=10) is True
    assert page.clicks == [CONSENT_BUTTON_SELECTOR]
