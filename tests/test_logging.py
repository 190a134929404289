import asyncio
import json
import logging

import pytest

from adlib_scraper.logging import jlog, logging_context, runlog, set_global_context


def payloads(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "scraper"]


def test_jlog_merges_context(caplog):
    caplog.set_level(logging.INFO, logger="scraper")
    set_global_context(app="adlib_scraper")
    with logging_context(page_id="123", limit=None):
        jlog("info", event="phase", phase="navigating")
    jlog("info", event="after")
    inside, outside = payloads(caplog)
    assert inside["app"] == "adlib_scraper"
    assert inside["page_id"] == "123"
    assert "limit" not in inside
    assert inside["event"] == "phase"
    assert "ts" in inside
    assert "page_id" not in outside


def test_runlog_level(caplog):
    caplog.set_level(logging.INFO, logger="scraper")
    runlog("run_failed", page_id="9", level="error", error="boom")
    (record,) = [r for r in caplog.records if r.name == "scraper"]
    assert record.levelno == logging.ERROR
    assert json.loads(record.getMessage())["page_id"] == "9"


@pytest.mark.asyncio
async def test_context_is_isolated_between_tasks(caplog):
    caplog.set_level(logging.INFO, logger="scraper")

    async def run(page_id):
        with logging_context(page_id=page_id):
            await asyncio.sleep(0)
            jlog("info", event="tick", expected=page_id)

    await asyncio.gather(run("a"), run("b"))
    for payload in payloads(caplog):
        assert payload["page_id"] == payload["expected"]
