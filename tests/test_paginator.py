import dataclasses
import json
import random
import urllib.parse

import pytest

from adlib_scraper.config import Budget, HarvestSettings
from adlib_scraper.models import TokenSet
from adlib_scraper import paginator
from adlib_scraper.paginator import (
    API_ENDPOINT,
    FETCH_JS,
    STOP_BUDGET,
    STOP_HTTP,
    STOP_LIMIT,
    STOP_NO_CURSOR,
    STOP_NO_DATA,
    STOP_PAGE_CEILING,
    DirectApiPaginator,
    build_form_body,
)

from conftest import FakePage

SETTINGS = HarvestSettings()


def tokens(**kw):
    base = {"query_id": "777", "csrf_token": "dtsg", "session_token": "lsd", "cursor": "C0"}
    base.update(kw)
    return TokenSet(**base)


def api_body(ids, cursor):
    ads = ",".join(
        '{"ad_archive_id":"%s","start_date":1704283200,"snapshot":{"resized_image_url":"https:\\/\\/img\\/%s.jpg"}}' % (i, i) for i in ids
    )
    tail = ',"forward_cursor":"%s"' % cursor if cursor else ""
    return 'for (;;);{"edges":[' + ads + "]" + tail + "}"


def ok(body, status=200):
    return {"ok": True, "status": status, "body": body}


def make_paginator(page, tok, *, settings=SETTINGS, clock=None):
    diagnostics = []
    budget = Budget(settings.budget_s, clock=clock) if clock else Budget(settings.budget_s)
    pag = DirectApiPaginator(
        page, page_id="123", tokens=tok, settings=settings, budget=budget, diagnostics=diagnostics, rng=random.Random(0)
    )
    return pag, diagnostics


def stops(diagnostics):
    return [d["reason"] for d in diagnostics if d["label"] == "fallback-stopped"]


def test_form_body_replays_query_with_cursor():
    fields = dict(urllib.parse.parse_qsl(build_form_body("123", tokens(), page_size=30)))
    assert fields["doc_id"] == "777"
    assert fields["fb_dtsg"] == "dtsg"
    assert fields["lsd"] == "lsd"
    variables = json.loads(fields["variables"])
    assert variables["cursor"] == "C0"
    assert variables["first"] == 30
    assert variables["viewAllPageID"] == "123"
    assert variables["countries"] == ["ALL"]
    assert variables["adType"] == "ALL"
    assert variables["mediaType"] == "ALL"


@pytest.mark.asyncio
async def test_missing_tokens_skip_network_and_name_fields():
    page = FakePage()
    pag, diagnostics = make_paginator(page, tokens(csrf_token=None, cursor=None))
    assert await pag.run(set(), 50) == []
    assert page.calls(FETCH_JS) == []
    (diag,) = diagnostics
    assert diag["label"] == "fallback-missing-tokens"
    assert diag["missing"] == ["csrf_token", "cursor"]
    assert diag["hasQueryId"] is True
    assert pag.stop_reason == "missing_tokens"


@pytest.mark.asyncio
async def test_walks_cursor_until_exhausted_and_skips_known_ids(clock):
    responses = iter([ok(api_body(["1", "2", "3"], "C1")), ok(api_body(["3", "4"], None))])
    page = FakePage({FETCH_JS: lambda _: next(responses)}, clock=clock)
    tok = tokens()
    pag, diagnostics = make_paginator(page, tok, clock=clock)
    records = await pag.run({"1"}, 50)
    assert [r.library_id for r in records] == ["2", "3", "4"]
    assert records[0].start_date == "3 Jan 2024"
    assert records[0].asset_url == "https://img/2.jpg"
    assert stops(diagnostics) == [STOP_NO_CURSOR]
    assert pag.pages_fetched == 2
    sent = [json.loads(dict(urllib.parse.parse_qsl(arg["body"]))["variables"])["cursor"] for arg in page.calls(FETCH_JS)]
    assert sent == ["C0", "C1"]
    assert page.calls(FETCH_JS)[0]["endpoint"] == API_ENDPOINT
    assert len(page.waits) == 1
    assert 1000 <= page.waits[0] <= 2000


@pytest.mark.asyncio
async def test_stops_on_limit():
    page = FakePage({FETCH_JS: ok(api_body(["1", "2", "3"], "C1"))})
    pag, diagnostics = make_paginator(page, tokens())
    records = await pag.run(set(), 2)
    assert [r.library_id for r in records] == ["1", "2"]
    assert stops(diagnostics) == [STOP_LIMIT]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result,reason",
    [
        (ok("denied", status=500), STOP_HTTP),
        ({"ok": False, "status": 0, "body": "TypeError: Failed to fetch"}, STOP_HTTP),
        (ok('for (;;);{"errors":[]}'), STOP_NO_DATA),
    ],
)
async def test_distinct_stop_reasons(result, reason):
    page = FakePage({FETCH_JS: result})
    pag, diagnostics = make_paginator(page, tokens())
    assert await pag.run(set(), 50) == []
    assert stops(diagnostics) == [reason]
    assert pag.pages_fetched == 1


@pytest.mark.asyncio
async def test_page_ceiling(clock):
    counter = iter(range(1000))

    def respond(_):
        n = next(counter)
        return ok(api_body([str(n)], f"C{n + 1}"))

    page = FakePage({FETCH_JS: respond}, clock=clock)
    settings = dataclasses.replace(SETTINGS, api_page_ceiling=3)
    pag, diagnostics = make_paginator(page, tokens(), settings=settings, clock=clock)
    records = await pag.run(set(), 50)
    assert len(records) == 3
    assert stops(diagnostics) == [STOP_PAGE_CEILING]


@pytest.mark.asyncio
async def test_budget_stops_pagination(clock):
    page = FakePage({FETCH_JS: ok(api_body(["1"], "C1"))}, clock=clock)
    budget = Budget(SETTINGS.budget_s, clock=clock)
    clock.advance(SETTINGS.budget_s + 1)
    diagnostics = []
    pag = DirectApiPaginator(page, page_id="123", tokens=tokens(), settings=SETTINGS, budget=budget, diagnostics=diagnostics)
    assert await pag.run(set(), 50) == []
    assert stops(diagnostics) == [STOP_BUDGET]
    assert page.calls(FETCH_JS) == []


def test_every_stop_reason_is_exported():
    reasons = {name for name in vars(paginator) if name.startswith("STOP_")}
    assert "STOP_PARSE" in reasons
    assert reasons <= set(paginator.__all__)
