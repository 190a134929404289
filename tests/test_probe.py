import base64

import pytest

from adlib_scraper.probe import (
    CARD_COUNT_JS,
    JS_STATE_JS,
    VERDICT_BROKEN,
    VERDICT_WORKING,
    classify_scroll_test,
    diagnose,
    summarize_network,
    take_screenshot,
)
from adlib_scraper.telemetry import HYDRATION_JS, TELEMETRY_JS

from conftest import FakePage, make_factory


@pytest.mark.parametrize(
    "pre,post,verdict",
    [
        (21, 30, VERDICT_WORKING),
        (21, 21, VERDICT_BROKEN),
        (0, 21, VERDICT_BROKEN),
        (0, 26, VERDICT_WORKING),
    ],
)
def test_classify_scroll_test(pre, post, verdict):
    report = classify_scroll_test({"cards": pre, "height": 1000}, {"cards": post, "height": 1500})
    assert report["verdict"] == verdict
    assert report["newAdsLoaded"] == post - pre
    assert report["heightGrew"] is True


def test_summarize_network_counts_by_type_and_status():
    log = [{"type": "xhr", "status": 200}, {"type": "script", "status": 200}, {"type": "xhr", "status": 403}]
    assert summarize_network(log) == {"total": 3, "byType": {"xhr": 2, "script": 1}, "byStatus": {"200": 2, "403": 1}}


@pytest.mark.asyncio
async def test_take_screenshot_returns_base64_jpeg_and_snapshot():
    events = []
    page = FakePage({HYDRATION_JS: {"adCount": 3, "hasSpinner": False}, TELEMETRY_JS: {"adContainerCount": 3}})
    out = await take_screenshot("123", session_factory=make_factory(page, events))
    assert base64.b64decode(out["screenshot"]) == b"\xff\xd8jpeg"
    assert out["diagnostics"]["label"] == "screenshot"
    assert out["diagnostics"]["adContainerCount"] == 3
    assert events == ["open", "closed"]
    assert "view_all_page_id=123" in page.gotos[0]


@pytest.mark.asyncio
async def test_diagnose_reports_scroll_verdict():
    counts = iter([{"cards": 21, "height": 9000}, {"cards": 33, "height": 12000}])
    page = FakePage(
        {
            TELEMETRY_JS: {"adContainerCount": 21},
            JS_STATE_JS: {"totalScripts": 40, "hasFbJs": True},
            CARD_COUNT_JS: lambda _: next(counts),
        }
    )
    report = await diagnose("123", session_factory=make_factory(page, []))
    assert report["scrollTest"]["verdict"] == VERDICT_WORKING
    assert report["scrollTest"]["newAdsLoaded"] == 12
    assert report["jsState"]["hasFbJs"] is True
    assert report["pageDiagnostics"]["label"] == "diagnose"
    assert report["networkSummary"] == {"total": 0, "byType": {}, "byStatus": {}}
    assert report["consoleMessages"] == []
    assert "ads" not in report
    assert set(page.listeners) == {"response", "console", "pageerror"}
