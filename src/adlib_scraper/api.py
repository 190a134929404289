"""HTTP front door: thin FastAPI routes over the harvester and the probes."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import probe, session
from .config import SCROLL_MODES, HarvestSettings
from .logging import jlog, logging_context
from .versioning import get_scraper_version

MISSING_PAGE_ID = "facebookPageId is required"


class JobRequest(BaseModel):
    facebookPageId: Any = None
    adLimit: Optional[int] = None
    scrollMode: Optional[str] = None


app = FastAPI(title="adlib-scraper", version=get_scraper_version())


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _page_id(req: JobRequest) -> str | None:
    value = req.facebookPageId
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


@app.exception_handler(RequestValidationError)
async def _bad_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, f"Invalid request body: {exc.errors()}")


@app.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat(), "version": get_scraper_version()}


@app.post("/scrape")
async def scrape(req: JobRequest):
    page_id = _page_id(req)
    if page_id is None:
        return _error(400, MISSING_PAGE_ID)
    settings = HarvestSettings()
    if req.scrollMode is not None:
        if req.scrollMode not in SCROLL_MODES:
            return _error(400, f"scrollMode must be one of {list(SCROLL_MODES)}")
        settings = dataclasses.replace(settings, scroll_mode=req.scrollMode)
    try:
        with logging_context(route="scrape"):
            result = await session.harvest(page_id, req.adLimit, settings=settings)
    except Exception as exc:
        jlog("error", event="scrape_failed", page_id=page_id, error=str(exc))
        return _error(500, str(exc))
    return result.to_dict()


@app.post("/screenshot")
async def screenshot(req: JobRequest):
    page_id = _page_id(req)
    if page_id is None:
        return _error(400, MISSING_PAGE_ID)
    try:
        return await probe.take_screenshot(page_id)
    except Exception as exc:
        jlog("error", event="screenshot_failed", page_id=page_id, error=str(exc))
        return _error(500, str(exc))


@app.post("/diagnose")
async def diagnose(req: JobRequest):
    page_id = _page_id(req)
    if page_id is None:
        return _error(400, MISSING_PAGE_ID)
    try:
        return await probe.diagnose(page_id)
    except Exception as exc:
        jlog("error", event="diagnose_failed", page_id=page_id, error=str(exc))
        return _error(500, str(exc))


__all__ = ["JobRequest", "app"]
