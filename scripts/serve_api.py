#!/usr/bin/env python3
"""Serve the harvester's HTTP front door with uvicorn (port from ``PORT``, default 3003)."""
from __future__ import annotations

import os

import uvicorn

from adlib_scraper.logging import configure_logging, set_global_context
from adlib_scraper.versioning import get_scraper_version

DEFAULT_PORT = 3003


def main() -> None:
    configure_logging()
    set_global_context(app="adlib_scraper", pipeline="api", scraper_version=get_scraper_version())
    port = int(os.getenv("PORT", str(DEFAULT_PORT)))
    uvicorn.run("adlib_scraper.api:app", host=os.getenv("HOST", "0.0.0.0"), port=port)


if __name__ == "__main__":
    main()
