"""High-level entry points and shared utilities for the ad library harvester."""

from .config import DEFAULT_ADS, MAX_ADS, MIN_ADS, Budget, HarvestSettings, clamp_limit
from .logging import configure_logging, jlog, logging_context, runlog, set_global_context
from .merge import dedupe, merge_records
from .models import AdRecord, NetworkCapture, RunResult, ScrollState, TokenSet
from .probe import diagnose, take_screenshot
from .session import NavigationError, harvest
from .urls import build_library_url, parse_page_id_from_url
from .versioning import get_scraper_version

__all__ = [
    "AdRecord",
    "Budget",
    "DEFAULT_ADS",
    "HarvestSettings",
    "MAX_ADS",
    "MIN_ADS",
    "NavigationError",
    "NetworkCapture",
    "RunResult",
    "ScrollState",
    "TokenSet",
    "build_library_url",
    "clamp_limit",
    "configure_logging",
    "dedupe",
    "diagnose",
    "get_scraper_version",
    "harvest",
    "jlog",
    "logging_context",
    "merge_records",
    "parse_page_id_from_url",
    "runlog",
    "set_global_context",
    "take_screenshot",
]
