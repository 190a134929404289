import json
import logging
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from adlib_scraper import api
from adlib_scraper.models import AdRecord, RunResult


@pytest.fixture
def client():
    return TestClient(api.app)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["timestamp"]
    assert body["version"]


@pytest.mark.parametrize("payload", [{}, {"facebookPageId": ""}, {"facebookPageId": "   "}, {"facebookPageId": 123}])
@pytest.mark.parametrize("route", ["/scrape", "/screenshot", "/diagnose"])
def test_missing_page_id_is_400(client, route, payload):
    resp = client.post(route, json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "facebookPageId is required"}


def test_scrape_returns_run_result(client):
    result = RunResult(success=True, ads=(AdRecord("1", "image", "https://img"),), duration_ms=5)
    with patch("adlib_scraper.api.session.harvest", new=AsyncMock(return_value=result)) as harvest:
        resp = client.post("/scrape", json={"facebookPageId": "123", "adLimit": 50, "scrollMode": "smooth"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["totalFound"] == 1
    assert body["ads"][0]["libraryId"] == "1"
    args, kwargs = harvest.call_args
    assert args == ("123", 50)
    assert kwargs["settings"].scroll_mode == "smooth"


def test_scrape_rejects_unknown_scroll_mode(client):
    resp = client.post("/scrape", json={"facebookPageId": "123", "scrollMode": "warp"})
    assert resp.status_code == 400
    assert "scrollMode" in resp.json()["error"]


def test_failed_run_is_still_200(client):
    result = RunResult(success=False, errors=("Navigation failed with HTTP 403",))
    with patch("adlib_scraper.api.session.harvest", new=AsyncMock(return_value=result)):
        resp = client.post("/scrape", json={"facebookPageId": "123"})
    assert resp.status_code == 200
    assert resp.json()["success"] is False


def test_scrape_exception_is_500_and_logged(client, caplog):
    caplog.set_level(logging.ERROR, logger="scraper")
    with patch("adlib_scraper.api.session.harvest", new=AsyncMock(side_effect=RuntimeError("boom"))):
        resp = client.post("/scrape", json={"facebookPageId": "123"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "boom"}
    events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "scraper"]
    assert {"event": "scrape_failed", "page_id": "123", "error": "boom"}.items() <= events[-1].items()


def test_probe_exception_is_500(client):
    with patch("adlib_scraper.api.probe.diagnose", new=AsyncMock(side_effect=RuntimeError("browser crashed"))):
        resp = client.post("/diagnose", json={"facebookPageId": "123"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "browser crashed"}


def test_screenshot_passthrough(client):
    payload = {"screenshot": "abc", "diagnostics": {"label": "screenshot"}}
    with patch("adlib_scraper.api.probe.take_screenshot", new=AsyncMock(return_value=payload)):
        resp = client.post("/screenshot", json={"facebookPageId": "123"})
    assert resp.status_code == 200
    assert resp.json() == payload
