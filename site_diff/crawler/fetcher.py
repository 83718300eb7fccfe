# site_diff/crawler/fetcher.py
"""
Fetcher module: cache-aware HTTP GET of one path from one side, with retry/backoff
and timeout. Every failure is returned as a :class:`FetchResult` carrying a typed
:class:`FetchError`; nothing is raised past the per-path boundary.
"""
from __future__ import annotations

import asyncio
import socket
import ssl
from contextlib import AsyncExitStack
from typing import Optional, Sequence

from aiohttp import (
    ClientConnectorError,
    ClientError,
    ClientSession,
    ClientSSLError,
    InvalidURL,
)

from site_diff.cache import Cache
from site_diff.config import SiteDiffConfig
from site_diff.crawler.models import FetchResult, Side
from site_diff.errors import CacheError, FetchError, FetchErrorKind
from site_diff.events import Outcome, ProgressChannel, ProgressEvent
from site_diff.logger import logger
from site_diff.utils import join_url

RETRY_STATUS: Sequence[int] = tuple(range(500, 600)) + (429,)


class _RetryableStatus(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"retryable status {status}")
        self.status = status


def classify_error(exc: BaseException, url: str) -> FetchError:
    """Map a transport exception onto a :class:`FetchErrorKind`."""
    if isinstance(exc, asyncio.TimeoutError):
        return FetchError(FetchErrorKind.TIMEOUT, url, "request timed out")
    if isinstance(exc, InvalidURL):
        return FetchError(FetchErrorKind.INVALID_URL, url, f"invalid URL: {exc}")
    if isinstance(exc, (ClientSSLError, ssl.SSLError)):
        return FetchError(FetchErrorKind.TLS, url, f"TLS failure: {exc}")
    if isinstance(exc, ClientConnectorError) and isinstance(exc.os_error, socket.gaierror):
        return FetchError(FetchErrorKind.DNS, url, f"DNS lookup failed: {exc}")
    return FetchError(FetchErrorKind.CONNECTION, url, f"{type(exc).__name__}: {exc}")


class Fetcher:
    """Retrieves one page for one side, consulting the cache first."""

    def __init__(
        self,
        session: ClientSession,
        cache: Cache,
        config: SiteDiffConfig,
        events: Optional[ProgressChannel] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
        retry_status: Sequence[int] = RETRY_STATUS,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        self.session = session
        self.cache = cache
        self.config = config
        self.events = events
        self._semaphore = semaphore
        self._retry_status = retry_status
        self._stop = stop

    async def fetch(self, side: Side, base_url: str, path: str) -> FetchResult:
        """Return cached or live content for ``base_url + path``."""
        side = Side(side)
        url = join_url(base_url, path)

        cached = self._read_cache(side, path)
        if cached is not None:
            result = FetchResult(path, side, url, content=cached.content, status=cached.status, from_cache=True)
            self._notify(result)
            return result

        async with AsyncExitStack() as stack:
            if self._semaphore is not None:
                await stack.enter_async_context(self._semaphore)
            if self._stopped():
                error = FetchError(FetchErrorKind.CANCELLED, url, "run cancelled before the request was sent")
                result = FetchResult(path, side, url, error=error)
            else:
                result = await self._get(side, url, path)

        if result.ok:
            self._write_cache(result)
        self._notify(result)
        return result

    async def _get(self, side: Side, url: str, path: str) -> FetchResult:
        # retry/backoff loop
        attempts = 0
        while True:
            try:
                async with self.session.get(url) as resp:
                    status = resp.status
                    if status in self._retry_status:
                        raise _RetryableStatus(status)
                    if not 200 <= status < 300:
                        error = FetchError(
                            FetchErrorKind.HTTP_STATUS, url, f"HTTP {status}", status=status
                        )
                        return FetchResult(path, side, url, error=error, status=status)
                    text = await resp.text(errors="replace")
                    return FetchResult(path, side, url, content=text, status=status)
            except _RetryableStatus as exc:
                failure = FetchError(
                    FetchErrorKind.HTTP_STATUS, url, f"HTTP {exc.status}", status=exc.status
                )
            except (ClientError, asyncio.TimeoutError, ssl.SSLError) as exc:
                failure = classify_error(exc, url)
                if failure.kind in (FetchErrorKind.INVALID_URL, FetchErrorKind.DNS, FetchErrorKind.TLS):
                    return FetchResult(path, side, url, error=failure)
            except ValueError as exc:
                # yarl rejects some malformed URLs before aiohttp sees them
                return FetchResult(path, side, url, error=classify_error(InvalidURL(url, str(exc)), url))

            attempts += 1
            if attempts > self.config.retry_times:
                return FetchResult(path, side, url, error=failure, status=failure.status)
            # exponential backoff, cap at 60s
            backoff = min(self.config.retry_backoff * 2 ** (attempts - 1), 60)
            if self._stopped():
                return FetchResult(path, side, url, error=failure, status=failure.status)
            logger.debug(
                "Retry %d/%d for %s after %.2f s (%s)", attempts, self.config.retry_times, url, backoff, failure
            )
            await self._pause(backoff)
            if self._stopped():
                logger.debug("Retry of %s abandoned, run cancelled", url)
                return FetchResult(path, side, url, error=failure, status=failure.status)

    def _stopped(self) -> bool:
        return self._stop is not None and self._stop.is_set()

    async def _pause(self, delay: float) -> None:
        """Backoff sleep that ends early when the run is cancelled."""
        if self._stop is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _read_cache(self, side: Side, path: str):
        try:
            return self.cache.read(side, path)
        except CacheError as exc:
            logger.warning("Cache read disabled for %s %s: %s", side.value, path, exc)
            return None

    def _write_cache(self, result: FetchResult) -> None:
        try:
            self.cache.write(result.side, result.path, result.content or "", url=result.url, status=result.status)
        except CacheError as exc:
            logger.warning("Cache write skipped for %s %s: %s", result.side.value, result.path, exc)

    def _notify(self, result: FetchResult) -> None:
        if result.error is not None:
            outcome, detail = Outcome.ERROR, str(result.error)
            logger.warning("Failed %s %s: %s", result.side.value, result.path, result.error)
        elif result.from_cache:
            outcome, detail = Outcome.CACHED, result.url
            logger.debug("Cache hit %s %s", result.side.value, result.path)
        else:
            outcome, detail = Outcome.FETCHED, result.url
            logger.info("Visited %s (%s)", result.url, result.side.value)
        if self.events is not None:
            self.events.publish(ProgressEvent(result.path, result.side, outcome, detail))
