from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable

import pytest


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self.page = page
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    async def is_visible(self, timeout: float | None = None) -> bool:
        return self.selector in self.page.visible

    async def click(self) -> None:
        self.page.clicks.append(self.selector)


class FakePage:
    """In-memory stand-in for a Playwright page.

    ``evaluate`` dispatches on the script constant; a handler is either a value
    or a callable taking the script argument.
    """

    def __init__(self, handlers: dict[str, Any] | None = None, *, status: int = 200, clock: FakeClock | None = None) -> None:
        self.handlers: dict[str, Any] = dict(handlers or {})
        self.status = status
        self.clock = clock
        self.evaluated: list[tuple[str, Any]] = []
        self.init_scripts: list[str] = []
        self.listeners: dict[str, list[Callable[..., Any]]] = {}
        self.visible: set[str] = set()
        self.clicks: list[str] = []
        self.waits: list[int] = []
        self.gotos: list[str] = []
        self.html = "<html><body></body></html>"

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append((script, arg))
        handler = self.handlers.get(script)
        if callable(handler):
            return handler(arg)
        return handler

    def calls(self, script: str) -> list[Any]:
        return [arg for js, arg in self.evaluated if js == script]

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners.setdefault(event, []).append(handler)

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> FakeResponse:
        self.gotos.append(url)
        return FakeResponse(self.status)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def wait_for_timeout(self, ms: float) -> None:
        self.waits.append(int(ms))
        if self.clock is not None:
            self.clock.advance(ms / 1000)

    async def screenshot(self, **kwargs: Any) -> bytes:
        return b"\xff\xd8jpeg"

    async def content(self) -> str:
        return self.html


def make_card(library_id: str, *, video: bool = False, extra_meta: list[str] | None = None, spans: list[str] | None = None) -> dict[str, Any]:
    return {
        "metaTexts": [f"Library ID: {library_id}", "Started running on 3 Jan 2024", *(extra_meta or [])],
        "spanTexts": list(spans or []),
        "video": {"src": f"https://video.example/{library_id}.mp4", "poster": f"https://img.example/{library_id}_poster.jpg"} if video else None,
        "images": [{"src": f"https://img.example/{library_id}.jpg", "width": 400, "height": 300, "naturalWidth": 800, "naturalHeight": 600}],
    }


def make_cards(n: int, start: int = 1) -> list[dict[str, Any]]:
    return [make_card(str(100000 + i)) for i in range(start, start + n)]


def make_factory(page: FakePage, events: list[str]):
    @asynccontextmanager
    async def factory(settings):
        events.append("open")
        try:
            yield page
        finally:
            events.append("closed")

    return factory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
