# File: site_diff/engine.py
"""site_diff.engine: orchestration of fetch → sanitize → diff over every configured path."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

from aiohttp import ClientSession, ClientTimeout

from site_diff.aggregator import Report, aggregate_results
from site_diff.cache import Cache, CachePolicy
from site_diff.config import SiteDiffConfig, load_config
from site_diff.crawler.fetcher import Fetcher
from site_diff.crawler.models import FetchResult, Side
from site_diff.differ import DiffResult, diff
from site_diff.errors import ConfigurationError
from site_diff.events import ProgressChannel
from site_diff.logger import logger
from site_diff.report import dump_report
from site_diff.sanitizer import sanitize
from site_diff.utils import normalize_path, remove_duplicates

__all__ = ["SiteDiff"]


class SiteDiff:
    """Фасад для CLI и тестов: запуск сравнения, сбор отчёта и выгрузка артефактов."""

    @staticmethod
    def load_config(path: Optional[str]) -> SiteDiffConfig:
        """Загружает конфиг из YAML/JSON."""
        return load_config(path)

    def __init__(
        self,
        config: SiteDiffConfig,
        cache: Optional[Cache] = None,
        events: Optional[ProgressChannel] = None,
    ) -> None:
        self.config = config
        self.cache = cache if cache is not None else Cache(
            config.cache_dir, CachePolicy.from_mode(config.cached)
        )
        self.events = events
        self._stop = asyncio.Event()

    def cancel(self) -> None:
        """Stop starting new paths. In-flight fetches resolve or time out on their own."""
        self._stop.set()

    def _session(self) -> ClientSession:
        return ClientSession(
            timeout=ClientTimeout(total=self.config.timeout),
            headers={"User-Agent": self.config.user_agent},
            raise_for_status=False,
        )

    def _resolve(
        self,
        paths: Optional[Sequence[str]],
        before_base: Optional[str],
        after_base: Optional[str],
    ) -> tuple[List[str], str, str]:
        resolved = (
            remove_duplicates([normalize_path(p) for p in paths])
            if paths is not None
            else self.config.resolve_paths()
        )
        before = before_base or self.config.before.url
        after = after_base or self.config.after.url
        if not resolved:
            raise ConfigurationError("No paths configured")
        if not before:
            raise ConfigurationError("No before URL configured")
        if not after:
            raise ConfigurationError("No after URL configured")
        return resolved, before.rstrip("/"), after.rstrip("/")

    async def run(
        self,
        paths: Optional[Sequence[str]] = None,
        before_base: Optional[str] = None,
        after_base: Optional[str] = None,
    ) -> Report:
        """Compare every path between the two bases and return the ordered report."""
        paths, before_base, after_base = self._resolve(paths, before_base, after_base)
        logger.info("Comparing %d paths: %s vs %s", len(paths), before_base, after_base)
        start = time.monotonic()
        self._stop.clear()

        results: List[Optional[DiffResult]] = [None] * len(paths)
        semaphore = asyncio.Semaphore(self.config.concurrency)
        async with self._session() as session:
            fetcher = Fetcher(session, self.cache, self.config, self.events, semaphore, stop=self._stop)
            tasks = [
                asyncio.create_task(self._process(fetcher, i, path, before_base, after_base, results))
                for i, path in enumerate(paths)
            ]
            _, pending = await asyncio.wait(tasks, timeout=self.config.run_timeout)
            if pending:
                logger.error("Run did not finish within %s seconds", self.config.run_timeout)
                self.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        cancelled = self._stop.is_set()
        ordered = [
            r if r is not None else DiffResult.failure(path, "cancelled before completion")
            for path, r in zip(paths, results)
        ]
        report = aggregate_results(ordered, before_base, after_base, cancelled=cancelled)
        duration = time.monotonic() - start
        logger.info("Finished in %.2f s: %s", duration, report.summary())
        return report

    async def _process(
        self,
        fetcher: Fetcher,
        index: int,
        path: str,
        before_base: str,
        after_base: str,
        results: List[Optional[DiffResult]],
    ) -> None:
        if self._stop.is_set():
            return
        try:
            before, after = await asyncio.gather(
                fetcher.fetch(Side.BEFORE, before_base, path),
                fetcher.fetch(Side.AFTER, after_base, path),
            )
            results[index] = self._compare(path, before, after)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure on %s", path)
            results[index] = DiffResult.failure(path, f"{type(exc).__name__}: {exc}")

    def _compare(self, path: str, before: FetchResult, after: FetchResult) -> DiffResult:
        for fetched in (before, after):
            if fetched.error is not None:
                return DiffResult.failure(
                    path, f"{fetched.side.value}: {fetched.error}", fetched.error.kind
                )
        result = diff(
            sanitize(before.content or "", self.config.rules_for(Side.BEFORE)),
            sanitize(after.content or "", self.config.rules_for(Side.AFTER)),
            path=path,
        )
        logger.debug("%s: %s", path, result.status.value)
        return result

    async def store(
        self, paths: Optional[Sequence[str]] = None, base_url: Optional[str] = None
    ) -> List[FetchResult]:
        """Fetch every path live from *base_url* and record it as the "before" capture."""
        resolved = (
            remove_duplicates([normalize_path(p) for p in paths])
            if paths is not None
            else self.config.resolve_paths()
        )
        base = base_url or self.config.after.url
        if not resolved:
            raise ConfigurationError("No paths configured")
        if not base:
            raise ConfigurationError("No URL to store from")

        # live fetch only; results land in the "before" cache
        store_cache = Cache(
            self.cache.root, CachePolicy(read_tags=frozenset(), write_tags=frozenset({Side.BEFORE}))
        )
        semaphore = asyncio.Semaphore(self.config.concurrency)
        async with self._session() as session:
            fetcher = Fetcher(session, store_cache, self.config, self.events, semaphore)
            return list(
                await asyncio.gather(*(fetcher.fetch(Side.BEFORE, base, p) for p in resolved))
            )

    def run_sync(self, *args, **kwargs) -> Report:
        """Synchronous wrapper around :meth:`run` for scripts and the CLI."""
        return asyncio.run(self.run(*args, **kwargs))

    def store_sync(self, *args, **kwargs) -> List[FetchResult]:
        return asyncio.run(self.store(*args, **kwargs))

    def dump(
        self,
        report: Report,
        output_dir: Union[str, Path, None] = None,
        before_report_url: Optional[str] = None,
        after_report_url: Optional[str] = None,
        failing_paths_file: Union[str, Path, None] = None,
    ) -> Path:
        """Write failures.txt, per-path diff pages and the index for *report*."""
        return dump_report(
            report,
            output_dir if output_dir is not None else self.config.output_dir,
            before_report_url=before_report_url,
            after_report_url=after_report_url,
            failing_paths_file=failing_paths_file,
        )

