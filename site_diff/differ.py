"""site_diff.differ: line-level comparison of two sanitized documents."""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from site_diff.errors import FetchErrorKind
from site_diff.sanitizer import SanitizedDocument

__all__ = ["DiffStatus", "ChangeKind", "Change", "DiffDetail", "DiffResult", "diff"]


class DiffStatus(str, Enum):
    IDENTICAL = "identical"
    DIFFERENT = "different"
    ERROR = "error"


class ChangeKind(str, Enum):
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


@dataclass(frozen=True, slots=True)
class Change:
    """One contiguous change: ``before[b_start:b_end]`` became ``after[a_start:a_end]``."""

    kind: ChangeKind
    before_start: int
    before_end: int
    after_start: int
    after_end: int
    before_lines: tuple[str, ...] = ()
    after_lines: tuple[str, ...] = ()


@dataclass(slots=True)
class DiffDetail:
    """Minimal set of line changes between two documents, renderable as a unified diff."""

    before: List[str]
    after: List[str]
    changes: List[Change] = field(default_factory=list)

    @property
    def added(self) -> int:
        return sum(len(c.after_lines) for c in self.changes)

    @property
    def removed(self) -> int:
        return sum(len(c.before_lines) for c in self.changes)

    def unified(self, before_name: str = "before", after_name: str = "after", context: int = 3) -> str:
        return "\n".join(self.unified_lines(before_name, after_name, context))

    def unified_lines(
        self, before_name: str = "before", after_name: str = "after", context: int = 3
    ) -> Iterator[str]:
        return difflib.unified_diff(
            self.before, self.after, fromfile=before_name, tofile=after_name, n=context, lineterm=""
        )


@dataclass(slots=True)
class DiffResult:
    """Outcome for one path: identical, different (with detail) or error (with message)."""

    path: str
    status: DiffStatus
    detail: Optional[DiffDetail] = None
    error: Optional[str] = None
    error_kind: Optional[FetchErrorKind] = None

    @property
    def failed(self) -> bool:
        return self.status is not DiffStatus.IDENTICAL

    @classmethod
    def failure(
        cls, path: str, message: str, kind: Optional[FetchErrorKind] = None
    ) -> DiffResult:
        return cls(path=path, status=DiffStatus.ERROR, error=message, error_kind=kind)

    def to_dict(self) -> dict:
        data: dict = {"path": self.path, "status": self.status.value}
        if self.detail is not None:
            data["added"] = self.detail.added
            data["removed"] = self.detail.removed
        if self.error is not None:
            data["error"] = self.error
            data["error_kind"] = self.error_kind.value if self.error_kind else None
        return data


def diff(doc_before: SanitizedDocument, doc_after: SanitizedDocument, path: str = "") -> DiffResult:
    """Compare two sanitized documents. Pure: no I/O, same inputs give the same result."""
    before = doc_before.lines()
    after = doc_after.lines()
    # line-wise: line endings and a trailing newline alone are not a difference
    if before == after:
        return DiffResult(path=path, status=DiffStatus.IDENTICAL)

    matcher = difflib.SequenceMatcher(None, before, after, autojunk=False)
    changes = [
        Change(
            kind=ChangeKind(tag),
            before_start=i1,
            before_end=i2,
            after_start=j1,
            after_end=j2,
            before_lines=tuple(before[i1:i2]),
            after_lines=tuple(after[j1:j2]),
        )
        for tag, i1, i2, j1, j2 in matcher.get_opcodes()
        if tag != "equal"
    ]
    return DiffResult(
        path=path,
        status=DiffStatus.DIFFERENT,
        detail=DiffDetail(before=before, after=after, changes=changes),
    )
