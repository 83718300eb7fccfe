# site_diff/crawler/models.py
"""
Data models for the SiteDiff fetch layer.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from site_diff.errors import FetchError


class Side(str, Enum):
    """One of the two compared deployments."""

    BEFORE = "before"
    AFTER = "after"


@dataclass(slots=True)
class CacheEntry:
    """Cached content of one page for one side, plus fetch metadata."""

    side: Side
    path: str
    content: str
    url: str = ""
    status: Optional[int] = None
    fetched_at: str = ""


@dataclass(slots=True)
class FetchResult:
    """Outcome of fetching one path from one side: content or error, never both."""

    path: str
    side: Side
    url: str
    content: Optional[str] = None
    error: Optional[FetchError] = None
    status: Optional[int] = None
    from_cache: bool = False

    def __post_init__(self) -> None:
        if (self.content is None) == (self.error is None):
            raise ValueError("FetchResult needs exactly one of content or error")

    @property
    def ok(self) -> bool:
        return self.error is None
