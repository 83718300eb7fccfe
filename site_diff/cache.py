"""
Persistent on-disk page cache keyed by (side, path).

Layout::

    <root>/before/<sha256(path)>.json
    <root>/after/<sha256(path)>.json

Each file is one JSON document holding the content and its fetch metadata.
Entries are written through a temporary file and ``os.replace`` so
concurrent writers of distinct keys never see or produce partial files.
"""
from __future__ import annotations

import hashlib
import json
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional, Union

from site_diff.crawler.models import CacheEntry, Side
from site_diff.errors import CacheError
from site_diff.logger import logger

__all__ = ["CacheMode", "CachePolicy", "Cache"]


class CacheMode(str, Enum):
    """Which sides may be served from the cache (``--cached``)."""

    NONE = "none"
    ALL = "all"
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Read/write tags for one run. Built once, before any fetch."""

    read_tags: FrozenSet[Side] = frozenset()
    write_tags: FrozenSet[Side] = frozenset()

    @classmethod
    def from_mode(cls, mode: Union[CacheMode, str]) -> CachePolicy:
        """Writes are always enabled for both sides; reads follow *mode*."""
        mode = CacheMode(mode)
        reads = {
            CacheMode.NONE: frozenset(),
            CacheMode.ALL: frozenset({Side.BEFORE, Side.AFTER}),
            CacheMode.BEFORE: frozenset({Side.BEFORE}),
            CacheMode.AFTER: frozenset({Side.AFTER}),
        }[mode]
        return cls(read_tags=reads, write_tags=frozenset({Side.BEFORE, Side.AFTER}))

    def can_read(self, side: Side) -> bool:
        return side in self.read_tags

    def can_write(self, side: Side) -> bool:
        return side in self.write_tags


class Cache:
    """Key→content store with independent read/write switches per side."""

    def __init__(self, root: Union[str, Path], policy: Optional[CachePolicy] = None) -> None:
        self.root = Path(root).expanduser()
        self.policy = policy if policy is not None else CachePolicy.from_mode(CacheMode.BEFORE)

    def _entry_path(self, side: Side, path: str) -> Path:
        digest = hashlib.sha256(path.encode("utf-8")).hexdigest()
        return self.root / Side(side).value / f"{digest}.json"

    def read(self, side: Side, path: str) -> Optional[CacheEntry]:
        """Return the cached entry, or None on a miss or when reads are off for *side*."""
        side = Side(side)
        if not self.policy.can_read(side):
            return None
        file = self._entry_path(side, path)
        try:
            raw = file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"Cannot read cache entry {file}: {exc}") from exc
        try:
            data = json.loads(raw)
            return CacheEntry(
                side=side,
                path=data["path"],
                content=data["content"],
                url=data.get("url", ""),
                status=data.get("status"),
                fetched_at=data.get("fetched_at", ""),
            )
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise CacheError(f"Corrupt cache entry {file}: {exc}") from exc

    def write(
        self,
        side: Side,
        path: str,
        content: str,
        *,
        url: str = "",
        status: Optional[int] = None,
    ) -> bool:
        """Store *content* for (side, path), overwriting any prior entry.

        Returns False without touching the store when writes are off for *side*.
        """
        side = Side(side)
        if not self.policy.can_write(side):
            return False
        entry = CacheEntry(
            side=side,
            path=path,
            content=content,
            url=url,
            status=status,
            fetched_at=datetime.now(timezone.utc).isoformat(),
        )
        file = self._entry_path(side, path)
        payload = asdict(entry)
        payload["side"] = side.value
        tmp_name = None
        try:
            file.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=file.parent, suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                json.dump(payload, tmp, ensure_ascii=False)
            os.replace(tmp_name, file)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheError(f"Cannot write cache entry {file}: {exc}") from exc
        logger.debug("Cached %s %s -> %s", side.value, path, file.name)
        return True

    def keys(self, side: Side) -> List[str]:
        """Paths currently stored for *side*, sorted."""
        folder = self.root / Side(side).value
        if not folder.is_dir():
            return []
        paths: List[str] = []
        for file in folder.glob("*.json"):
            try:
                paths.append(json.loads(file.read_text(encoding="utf-8"))["path"])
            except (OSError, json.JSONDecodeError, KeyError, TypeError):
                logger.warning("Skipping unreadable cache entry %s", file)
        return sorted(paths)

    def clear(self, side: Optional[Side] = None) -> int:
        """Delete the entries of *side* (or of both sides). Returns the number removed."""
        sides = [Side(side)] if side is not None else list(Side)
        removed = 0
        for s in sides:
            folder = self.root / s.value
            if not folder.is_dir():
                continue
            for file in folder.glob("*.json"):
                try:
                    file.unlink()
                    removed += 1
                except OSError as exc:
                    raise CacheError(f"Cannot remove cache entry {file}: {exc}") from exc
        logger.info("Cleared %d cache entries under %s", removed, self.root)
        return removed
