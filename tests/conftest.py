# File: tests/conftest.py
from __future__ import annotations

from collections import Counter
from collections.abc import AsyncIterator
from typing import Any, Awaitable, Callable, Dict, List, Union

import pytest
import pytest_asyncio
from aiohttp import web

from site_diff.config import SiteDiffConfig, build_config
from site_diff.logger import init_logging

PageSpec = Union[str, tuple, Callable[[web.Request], Awaitable[web.StreamResponse]]]


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI tests rebind the logger to CliRunner streams; restore it after every test."""
    yield
    init_logging(level="WARNING")


@pytest.fixture()
def make_config(tmp_path) -> Callable[..., SiteDiffConfig]:
    """
    Return a factory for SiteDiffConfig with cache and output inside tmp_path.
    """

    def factory(**overrides: Any) -> SiteDiffConfig:
        data: Dict[str, Any] = {
            "cache_dir": str(tmp_path / "cache"),
            "output_dir": str(tmp_path / "output"),
            "timeout": 2.0,
            "retry_backoff": 0,
            "cached": "none",
        }
        data.update(overrides)
        return build_config(data)

    return factory


class Site:
    """In-process test site: path -> body, (status, body) or async handler; counts hits."""

    def __init__(self, pages: Dict[str, PageSpec]) -> None:
        self.pages = pages
        self.hits: Counter = Counter()
        self.url = ""

    def app(self) -> web.Application:
        app = web.Application()

        async def handler(request: web.Request) -> web.StreamResponse:
            self.hits[request.path] += 1
            page = self.pages.get(request.path)
            if page is None:
                return web.Response(status=404, text="not found")
            if callable(page):
                return await page(request)
            status, body = page if isinstance(page, tuple) else (200, page)
            return web.Response(status=status, text=body, content_type="text/html")

        app.router.add_route("GET", "/{tail:.*}", handler)
        return app


@pytest_asyncio.fixture
async def site_server(unused_tcp_port_factory) -> AsyncIterator[Callable[..., Awaitable[Site]]]:
    """Start any number of test sites; all are cleaned up after the test."""
    runners: List[web.AppRunner] = []

    async def start(pages: Dict[str, PageSpec]) -> Site:
        site = Site(pages)
        runner = web.AppRunner(site.app())
        await runner.setup()
        port = unused_tcp_port_factory()
        await web.TCPSite(runner, "127.0.0.1", port).start()
        runners.append(runner)
        site.url = f"http://127.0.0.1:{port}"
        return site

    try:
        yield start
    finally:
        for runner in runners:
            await runner.cleanup()


@pytest.fixture()
def unreachable_url(unused_tcp_port_factory) -> str:
    """Base URL on a port nothing listens on."""
    return f"http://127.0.0.1:{unused_tcp_port_factory()}"
