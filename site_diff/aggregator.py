"""site_diff.aggregator: сводный отчёт одного запуска сравнения."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from site_diff.differ import DiffResult, DiffStatus

__all__ = ["Report", "aggregate_results"]


@dataclass(slots=True)
class Report:
    """Результаты по всем путям в исходном порядке, плюс счётчики и список падений."""

    before_url: str = ""
    after_url: str = ""
    results: List[DiffResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in DiffStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    @property
    def failing(self) -> List[str]:
        """Пути со статусом different или error, в порядке обработки."""
        return [r.path for r in self.results if r.failed]

    @property
    def succeeded(self) -> bool:
        return not self.failing

    def result_for(self, path: str) -> DiffResult:
        for result in self.results:
            if result.path == path:
                return result
        raise KeyError(path)

    def summary(self) -> str:
        c = self.counts
        return (
            f"{len(self.results)} paths: {c['identical']} identical, "
            f"{c['different']} different, {c['error']} errors"
        )

    def json(self, *, pretty: bool = False) -> str:
        """Возвращает JSON-представление Report без построчных диффов."""
        output = {
            "before_url": self.before_url,
            "after_url": self.after_url,
            "cancelled": self.cancelled,
            "counts": self.counts,
            "failing": self.failing,
            "results": [r.to_dict() for r in self.results],
        }
        return json.dumps(output, ensure_ascii=False, indent=2 if pretty else None)


def aggregate_results(
    results: Sequence[DiffResult], before_url: str = "", after_url: str = "", cancelled: bool = False
) -> Report:
    """Собирает результаты по путям в Report, сохраняя порядок входа."""
    return Report(
        before_url=before_url,
        after_url=after_url,
        results=list(results),
        cancelled=cancelled,
    )
