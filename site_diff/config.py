# === FILE: site_diff/config.py ===
"""
Модуль для загрузки и валидации конфигурации SiteDiff.
Используется Pydantic для описания схемы и проверки данных.

Пример ``sitediff.yaml``::

    before:
      url: https://old.example.com
    after:
      url: https://new.example.com
      sanitization:
        rules:
          - type: strip_attribute
            attribute: data-build
    paths: ["/", "/about", "/contact"]
    cached: before
    sanitization:
      rules:
        - type: regex
          pattern: "csrf_token=\\w+"
        - type: whitespace
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from site_diff.cache import CacheMode
from site_diff.crawler.models import Side
from site_diff.errors import ConfigurationError
from site_diff.sanitizer import RuleSet
from site_diff.utils import normalize_path, read_paths_file, remove_duplicates


class SiteConfig(BaseModel):
    """Одна из сравниваемых сторон: базовый URL и собственные правила."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    url: Optional[str] = Field(None, description="Базовый URL; пути добавляются как суффикс.")
    sanitization: RuleSet = Field(default_factory=RuleSet)

    @field_validator("url", mode="before")
    def _strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().rstrip("/")
            if not v.startswith(("http://", "https://")):
                raise ValueError(f"URL должен начинаться с http:// или https://: {v!r}")
        return v


class SiteDiffConfig(BaseModel):
    """Конфигурация одного запуска сравнения."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    before: SiteConfig = Field(default_factory=SiteConfig)
    after: SiteConfig = Field(default_factory=SiteConfig)
    sanitization: RuleSet = Field(default_factory=RuleSet, description="Общие правила для обеих сторон.")

    paths: List[str] = Field(default_factory=list, description="Проверяемые пути.")
    paths_file: Optional[Path] = Field(None, description="Файл путей, по одному на строку.")

    cached: CacheMode = Field(CacheMode.BEFORE, description="Какие стороны читать из кэша.")
    cache_dir: Path = Field(Path(".sitediff/cache"), description="Каталог кэша.")
    output_dir: Path = Field(Path("output"), description="Каталог отчёта.")

    concurrency: int = Field(4, ge=1, description="Максимум одновременных запросов.")
    timeout: float = Field(10.0, gt=0, description="Таймаут на один запрос (секунд).")
    run_timeout: Optional[float] = Field(None, gt=0, description="Таймаут всего запуска (секунд).")
    retry_times: int = Field(0, ge=0, description="Число повторных попыток при 5xx/429.")
    retry_backoff: float = Field(1.0, ge=0, description="Базовая задержка между попытками.")
    user_agent: str = Field("SiteDiff/1.0", min_length=1, description="Заголовок User-Agent.")

    @field_validator("paths")
    def _normalize_paths(cls, v: List[str]) -> List[str]:
        return remove_duplicates([normalize_path(p) for p in v if p.strip()])

    @model_validator(mode="after")
    def _check_paths_source(self) -> SiteDiffConfig:
        if self.paths and self.paths_file is not None:
            raise ValueError("paths и paths_file нельзя задавать одновременно")
        return self

    def side(self, side: Side) -> SiteConfig:
        return self.before if Side(side) is Side.BEFORE else self.after

    def rules_for(self, side: Side) -> RuleSet:
        """Общие правила, затем правила стороны; селектор стороны важнее общего."""
        own = self.side(side).sanitization
        return RuleSet(
            rules=[*self.sanitization.rules, *own.rules],
            selector=own.selector or self.sanitization.selector,
            prettify=self.sanitization.prettify and own.prettify,
        )

    def resolve_paths(self) -> List[str]:
        """Возвращает нормализованные пути из конфига или из paths_file."""
        if self.paths_file is None:
            return list(self.paths)
        try:
            raw = read_paths_file(self.paths_file)
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Paths file '{self.paths_file}' not found!") from exc
        return remove_duplicates([normalize_path(p) for p in raw])

    def with_overrides(self, **overrides: Any) -> SiteDiffConfig:
        """Копия конфигурации с непустыми переопределениями (повторная валидация)."""
        data = self.model_dump()
        for key, value in overrides.items():
            if value is None:
                continue
            if key in ("before_url", "after_url"):
                data[key.split("_")[0]]["url"] = value
            else:
                data[key] = value
            # источник путей из CLI заменяет источник из файла конфигурации
            if key == "paths":
                data["paths_file"] = None
            elif key == "paths_file":
                data["paths"] = []
        return build_config(data)


DEFAULT_CONFIG = Path("sitediff.yaml")


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def build_config(data: dict[str, Any]) -> SiteDiffConfig:
    """Проверяет словарь и возвращает SiteDiffConfig либо ConfigurationError."""
    try:
        return SiteDiffConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {_format_validation_error(exc)}") from exc


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}"
        )
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}"
        )
    return data


def load_config(path: Union[str, Path, None]) -> SiteDiffConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект SiteDiffConfig.
    При отсутствии файла бросает FileNotFoundError; ошибки содержимого -
    ConfigurationError.
    """
    if path is None:
        if not DEFAULT_CONFIG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(DEFAULT_CONFIG))
        path_obj = DEFAULT_CONFIG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ConfigurationError(f"Неподдерживаемый формат конфига: {suffix}")

    return build_config(data)
