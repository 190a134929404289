"""Passive observation of the page's network traffic and console output."""

from __future__ import annotations

from typing import Any

from playwright.async_api import ConsoleMessage, Page, Response

from .config import DEFAULT_CAPTURE_BODY_CAP
from .logging import jlog
from .models import NetworkCapture
from .urls import classify_response_url, truncate_url

CONSOLE_TEXT_CHARS = 500


class TrafficInterceptor:
    """Run-scoped, append-only logs of observed traffic.

    Nothing here blocks or rewrites requests. With ``record_all`` every
    response and console message is kept (used by the diagnose probe).
    """

    def __init__(self, *, body_cap: int = DEFAULT_CAPTURE_BODY_CAP, record_all: bool = False) -> None:
        self.body_cap = body_cap
        self.record_all = record_all
        self.captures: list[NetworkCapture] = []
        self.network_log: list[dict[str, Any]] = []
        self.blocked: list[str] = []
        self.console_errors: list[str] = []
        self.console_messages: list[dict[str, str]] = []
        self.page_errors: list[str] = []

    def attach(self, page: Page) -> None:
        page.on("response", self.on_response)
        page.on("console", self.on_console)
        page.on("pageerror", self.on_page_error)

    async def on_response(self, response: Response) -> None:
        try:
            url = response.url
            status = response.status
            if status == 403:
                self.blocked.append(f"403: {truncate_url(url)}")

            kind = classify_response_url(url)
            if kind is None and not self.record_all:
                return
            request = response.request
            entry: dict[str, Any] = {
                "url": truncate_url(url, 300 if self.record_all else 200),
                "status": status,
                "method": request.method,
                "type": request.resource_type,
            }
            if self.record_all:
                entry["size"] = int((response.headers or {}).get("content-length") or 0)
            self.network_log.append(entry)

            if kind == "api":
                request_body = request.post_data or ""
                response_body = await response.text()
                self.captures.append(
                    NetworkCapture(
                        url=truncate_url(url),
                        request_body=request_body,
                        response_body=response_body[: self.body_cap],
                        status=status,
                    )
                )
                jlog("debug", event="api_captured", status=status, request_head=request_body[:80])
        except Exception as exc:
            jlog("debug", event="response_read_failed", error=str(exc))

    def on_console(self, message: ConsoleMessage) -> None:
        try:
            if self.record_all:
                self.console_messages.append({"type": message.type, "text": message.text[:CONSOLE_TEXT_CHARS]})
            if message.type == "error":
                self.console_errors.append(message.text)
        except Exception as exc:
            jlog("debug", event="console_read_failed", error=str(exc))

    def on_page_error(self, error: Any) -> None:
        self.page_errors.append(getattr(error, "message", None) or str(error))

    def recent_requests(self, n: int = 5) -> list[dict[str, Any]]:
        return list(self.network_log[-n:])

    @property
    def api_calls(self) -> list[dict[str, Any]]:
        return [e for e in self.network_log if classify_response_url(e["url"]) in ("api", "ajax")]


__all__ = ["TrafficInterceptor"]
