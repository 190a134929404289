"""Command-line harvesting of one advertiser page."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from dataclasses import dataclass
from typing import Sequence

from .config import DEFAULT_BUDGET_S, SCROLL_MODES, HarvestSettings
from .logging import jlog
from .models import RunResult
from .session import harvest
from .urls import parse_page_id_from_url


@dataclass(frozen=True)
class CliArgs:
    page_id: str
    limit: int | None
    scroll_mode: str
    budget_s: float
    headful: bool
    trace: bool
    debug_html: bool
    output: str | None


def validate_args(ns: argparse.Namespace) -> str:
    """Resolve the target page id from ``--page-id`` or ``--library-url``."""

    if ns.page_id and ns.library_url:
        raise ValueError("Pass either --page-id or --library-url, not both")
    if ns.library_url:
        page_id = parse_page_id_from_url(ns.library_url)
        if not page_id:
            raise ValueError(f"No numeric view_all_page_id in {ns.library_url!r}")
        return page_id
    page_id = (ns.page_id or "").strip()
    if not page_id:
        raise ValueError("--page-id or --library-url is required")
    return page_id


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Harvest ad records for one advertiser page from the public ad library")
    p.add_argument("--page-id", help="Numeric advertiser page id")
    p.add_argument("--library-url", help="Ad library URL; the page id is read from view_all_page_id")
    p.add_argument("--limit", type=int, help="Max records to return (clamped to 10..1000, default 400)")
    p.add_argument("--scroll-mode", choices=list(SCROLL_MODES), default="jump")
    p.add_argument(
        "--budget-s",
        type=float,
        default=DEFAULT_BUDGET_S,
        help="Wall-clock budget in seconds (default from ADLIB_BUDGET_S env or 180).",
    )
    p.add_argument("--headful", action="store_true", help="Run with a visible browser window.")
    p.add_argument("--trace", action="store_true", help="Save a Playwright trace under media/debug.")
    p.add_argument(
        "--debug-html",
        action="store_true",
        help="Dump page HTML to media/debug/after_load_<page_id>.html after hydration.",
    )
    p.add_argument("--output", help="Write the JSON result here instead of stdout")
    return p


def parse_args(argv: Sequence[str] | None = None) -> CliArgs:
    p = build_parser()
    ns = p.parse_args(argv)
    try:
        page_id = validate_args(ns)
    except ValueError as exc:
        p.error(str(exc))
    return CliArgs(
        page_id=page_id,
        limit=ns.limit,
        scroll_mode=ns.scroll_mode,
        budget_s=ns.budget_s,
        headful=ns.headful,
        trace=ns.trace,
        debug_html=ns.debug_html,
        output=ns.output,
    )


def settings_from_args(args: CliArgs) -> HarvestSettings:
    return dataclasses.replace(
        HarvestSettings(),
        scroll_mode=args.scroll_mode,
        budget_s=args.budget_s,
        headless=not args.headful,
        trace=args.trace,
        debug_html=args.debug_html,
    )


def write_result(result: RunResult, output: str | None) -> None:
    payload = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
        jlog("info", event="result_written", path=output, ads=result.total_found)
    else:
        sys.stdout.write(payload + "\n")


async def run(args: CliArgs) -> int:
    """Run one harvest and return the process exit code."""

    result = await harvest(args.page_id, args.limit, settings=settings_from_args(args))
    write_result(result, args.output)
    return 0 if result.success else 1


__all__ = ["CliArgs", "build_parser", "parse_args", "run", "settings_from_args", "validate_args", "write_result"]
