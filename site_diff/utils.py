"""site_diff.utils: URL and path helpers shared by the config, fetch and report layers."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Collection, List, Sequence, Union

from site_diff.logger import logger

__all__: Sequence[str] = (
    "normalize_path",
    "join_url",
    "read_paths_file",
    "remove_duplicates",
    "path_to_filename",
)

_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")


def normalize_path(path: str) -> str:
    """Приводит путь к виду ``/a/b``: ведущий слеш, без завершающего (кроме корня)."""
    p = path.strip()
    if not p.startswith("/"):
        p = "/" + p
    head, sep, query = p.partition("?")
    if len(head) > 1:
        head = head.rstrip("/") or "/"
    return head + sep + query


def join_url(base_url: str, path: str) -> str:
    """Склеивает базовый URL и путь ровно через один слеш."""
    return str(base_url).rstrip("/") + "/" + path.lstrip("/")


def read_paths_file(path: Union[str, Path]) -> List[str]:
    """Читает файл путей: по одному на строку, пустые строки и ``#``-комментарии пропускаются."""
    p = Path(path).expanduser()
    if not p.is_file():
        logger.error("Paths file not found: %s", p)
        raise FileNotFoundError(f"Paths file not found: {p}")
    paths = [
        line.strip()
        for line in p.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]
    logger.debug("Loaded %d paths from %s", len(paths), p)
    return paths


def remove_duplicates(paths: Collection[str]) -> List[str]:
    """Удаляет дубликаты, сохраняя порядок."""
    unique = list(dict.fromkeys(paths))
    removed = len(paths) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate paths", removed)
    return unique


def path_to_filename(path: str, suffix: str = ".html") -> str:
    """Stable, filesystem-safe artifact name for *path*: readable slug plus a short hash."""
    digest = hashlib.sha1(path.encode("utf-8")).hexdigest()[:8]
    slug = _SLUG_RE.sub("-", path.strip("/")).strip("-.")[:60] or "index"
    return f"{slug}-{digest}{suffix}"
