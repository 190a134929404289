#!/usr/bin/env python3
"""CLI shim for the ad library harvester.

Delegates to ``adlib_scraper.cli`` so the script can be executed directly
from a checkout without installing a console entry point.
"""
from __future__ import annotations

import asyncio
import sys

from adlib_scraper.cli import CliArgs, parse_args, run
from adlib_scraper.logging import configure_logging, logging_context, set_global_context
from adlib_scraper.versioning import get_scraper_version

SCRIPT_NAME = "harvest"


def main() -> None:
    """Parse CLI arguments and run one harvest."""
    configure_logging()
    set_global_context(app="adlib_scraper", pipeline=SCRIPT_NAME)
    version = get_scraper_version()
    with logging_context(script=SCRIPT_NAME, scraper_version=version):
        args: CliArgs = parse_args()
        sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
