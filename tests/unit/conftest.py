"""Conftest for unit tests - mark every test as a unit test and provide a fake web."""

from collections.abc import Callable

import httpx
import pytest


def pytest_collection_modifyitems(config, items):
    """Automatically mark all tests in the unit directory as unit tests."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


class FakeWeb:
    """In-memory web served through ``httpx.MockTransport``.

    Unknown URLs answer 404. ``requests`` records every URL asked for, in order.
    """

    def __init__(self) -> None:
        self.pages: dict[str, tuple[int, str, bytes]] = {}
        self.handlers: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[str] = []

    def add(self, url: str, body: str | bytes, content_type: str = "text/html", status: int = 200) -> None:
        content = body.encode("utf-8") if isinstance(body, str) else body
        self.pages[url] = (status, content_type, content)

    def add_handler(self, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handlers[url] = handler

    def page_requests(self) -> list[str]:
        return [url for url in self.requests if not url.endswith("/robots.txt")]

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.handlers:
            return self.handlers[url](request)
        if url not in self.pages:
            return httpx.Response(404, text="not found")
        status, content_type, content = self.pages[url]
        return httpx.Response(status, headers={"content-type": content_type}, content=content)


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
async def http_client(fake_web):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_web.handle)) as client:
        yield client
