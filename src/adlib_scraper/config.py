"""Run configuration: named constants, per-run settings and the wall-clock budget."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Callable

# ============================
# Limits
# ============================
MIN_ADS = 10
MAX_ADS = 1000
DEFAULT_ADS = 400

# ============================
# Budgets & pacing (overridable via env)
# ============================
DEFAULT_BUDGET_S = float(os.getenv("ADLIB_BUDGET_S", "180"))
DEFAULT_NAV_TIMEOUT_MS = int(os.getenv("ADLIB_NAV_TIMEOUT_MS", "60000"))
DEFAULT_WAIT_UNTIL = os.getenv("ADLIB_WAIT_UNTIL", "networkidle")
DEFAULT_SCROLL_DELAY_MS = int(os.getenv("ADLIB_SCROLL_DELAY_MS", "3000"))
DEFAULT_MAX_STALE_SCROLLS = int(os.getenv("ADLIB_MAX_STALE_SCROLLS", "10"))
DEFAULT_NEAR_BOTTOM_PX = int(os.getenv("ADLIB_NEAR_BOTTOM_PX", "300"))
DEFAULT_SEE_MORE_TIMEOUT_MS = 500
DEFAULT_CONSENT_TIMEOUT_MS = 3000
DEFAULT_HYDRATION_POLLS = int(os.getenv("ADLIB_HYDRATION_POLLS", "30"))
DEFAULT_HYDRATION_INTERVAL_MS = int(os.getenv("ADLIB_HYDRATION_INTERVAL_MS", "2000"))
DEFAULT_POST_HYDRATION_SETTLE_MS = 3000

# ============================
# Fallback policy
# ============================
DEFAULT_LOW_YIELD_THRESHOLD = int(os.getenv("ADLIB_LOW_YIELD_THRESHOLD", "30"))
DEFAULT_API_PAGE_CEILING = int(os.getenv("ADLIB_API_PAGE_CEILING", "50"))
DEFAULT_API_PAGE_SIZE = 30
DEFAULT_CAPTURE_BODY_CAP = 3000

# ============================
# Browser identity
# ============================
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1440, "height": 900}
DEFAULT_LOCALE = "en-US"
DEFAULT_EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "sec-ch-ua": '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Linux"',
}

SCROLL_MODES = ("jump", "smooth")


def clamp_limit(requested: int | None) -> int:
    """Clamp a requested record limit into ``[MIN_ADS, MAX_ADS]``; ``None`` means the default."""

    if requested is None:
        return DEFAULT_ADS
    return max(MIN_ADS, min(MAX_ADS, int(requested)))


@dataclass(frozen=True)
class HarvestSettings:
    budget_s: float = DEFAULT_BUDGET_S
    nav_timeout_ms: int = DEFAULT_NAV_TIMEOUT_MS
    wait_until: str = DEFAULT_WAIT_UNTIL
    scroll_mode: str = "jump"
    scroll_delay_ms: int = DEFAULT_SCROLL_DELAY_MS
    max_stale_scrolls: int = DEFAULT_MAX_STALE_SCROLLS
    near_bottom_px: int = DEFAULT_NEAR_BOTTOM_PX
    see_more_timeout_ms: int = DEFAULT_SEE_MORE_TIMEOUT_MS
    consent_timeout_ms: int = DEFAULT_CONSENT_TIMEOUT_MS
    hydration_polls: int = DEFAULT_HYDRATION_POLLS
    hydration_interval_ms: int = DEFAULT_HYDRATION_INTERVAL_MS
    post_hydration_settle_ms: int = DEFAULT_POST_HYDRATION_SETTLE_MS
    low_yield_threshold: int = DEFAULT_LOW_YIELD_THRESHOLD
    # Stale streak that ends scrolling early when yield is low; None keeps the full ceiling.
    early_fallback_streak: int | None = None
    fallback_enabled: bool = True
    api_page_ceiling: int = DEFAULT_API_PAGE_CEILING
    api_page_size: int = DEFAULT_API_PAGE_SIZE
    capture_body_cap: int = DEFAULT_CAPTURE_BODY_CAP
    active_status: str = "active"
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = DEFAULT_LOCALE
    viewport: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    extra_http_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_EXTRA_HEADERS))
    trace: bool = False
    debug_html: bool = False

    def __post_init__(self) -> None:
        if self.scroll_mode not in SCROLL_MODES:
            raise ValueError(f"scroll_mode must be one of {SCROLL_MODES}, got {self.scroll_mode!r}")
        if self.max_stale_scrolls < 1:
            raise ValueError("max_stale_scrolls must be >= 1")


class Budget:
    """Wall-clock budget checked cooperatively at loop boundaries."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._started = clock()

    def elapsed_s(self) -> float:
        return self._clock() - self._started

    def elapsed_ms(self) -> int:
        return int(self.elapsed_s() * 1000)

    def expired(self) -> bool:
        return self.elapsed_s() > self.seconds


__all__ = [
    "Budget",
    "DEFAULT_ADS",
    "HarvestSettings",
    "MAX_ADS",
    "MIN_ADS",
    "SCROLL_MODES",
    "clamp_limit",
]
