import pytest

from adlib_scraper.telemetry import TELEMETRY_JS, blocking_signals, snapshot

from conftest import FakePage


@pytest.mark.asyncio
async def test_snapshot_is_labelled():
    page = FakePage({TELEMETRY_JS: {"adContainerCount": 7, "scrollHeight": 5000}})
    diag = await snapshot(page, "after-initial-load")
    assert diag["label"] == "after-initial-load"
    assert diag["adContainerCount"] == 7


@pytest.mark.asyncio
async def test_snapshot_failure_is_captured_not_raised():
    def boom(_):
        raise RuntimeError("Execution context was destroyed")

    diag = await snapshot(FakePage({TELEMETRY_JS: boom}), "first-stale-scroll")
    assert diag == {"label": "first-stale-scroll", "error": "Execution context was destroyed"}


def test_blocking_signals_lists_only_present_flags():
    diag = {"hasCaptcha": False, "hasLoginWall": True, "hasRateLimit": True, "hasErrorMessage": False}
    assert blocking_signals(diag) == ["hasLoginWall", "hasRateLimit"]
    assert blocking_signals({"label": "x", "error": "boom"}) == []
