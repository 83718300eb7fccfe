# File: tests/test_cli.py
"""Тесты для CLI (`site_diff.cli`) с использованием click.testing.CliRunner.
Проверяют команды `diff`, `store`, `config`, `clear-cache`, `--version`,
а также коды выхода и обработку ошибок конфигурации.
"""
import importlib
import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from site_diff.aggregator import Report
from site_diff.cache import Cache, CachePolicy
from site_diff.cli import cli
from site_diff.crawler.models import FetchResult, Side
from site_diff.differ import DiffResult, DiffStatus
from site_diff.errors import ConfigurationError, FetchError, FetchErrorKind

# site_diff/__init__.py re-exports the `cli` Group under the submodule's name,
# so fetch the module object itself from the import system.
cli_module = importlib.import_module("site_diff.cli")


class FakeSiteDiff:
    """Подменяет SiteDiff: запоминает конфигурацию и возвращает заданный отчёт."""

    instances = []
    report = Report()
    stored = []

    def __init__(self, config, cache=None, events=None):
        self.config = config
        self.events = events
        self.dumped = None
        FakeSiteDiff.instances.append(self)

    def run_sync(self):
        if not self.config.before.url:
            raise ConfigurationError("No before URL configured")
        return FakeSiteDiff.report

    def store_sync(self, paths=None, base_url=None):
        self.store_args = (paths, base_url)
        return FakeSiteDiff.stored

    def dump(self, report, output_dir=None, before_report_url=None, after_report_url=None,
             failing_paths_file=None):
        self.dumped = (report, output_dir, before_report_url, after_report_url, failing_paths_file)
        return Path(output_dir)


@pytest.fixture(autouse=True)
def fake_sitediff(monkeypatch):
    """Патчим SiteDiff, чтобы CLI не ходил в сеть."""
    FakeSiteDiff.instances = []
    FakeSiteDiff.report = Report("http://old", "http://new", [DiffResult("/", DiffStatus.IDENTICAL)])
    FakeSiteDiff.stored = []
    monkeypatch.setattr(cli_module, "SiteDiff", FakeSiteDiff)
    return FakeSiteDiff


@pytest.fixture()
def config_file(tmp_path):
    cfg_file = tmp_path / "sitediff.yaml"
    cfg_file.write_text(
        json.dumps(
            {
                "before": {"url": "http://old.example.com"},
                "after": {"url": "http://new.example.com"},
                "paths": ["/", "/about"],
                "cache_dir": str(tmp_path / "cache"),
                "output_dir": str(tmp_path / "output"),
            }
        ),
        encoding="utf-8",
    )
    return cfg_file


def invoke(*args):
    return CliRunner().invoke(cli, ["--log-level", "ERROR", *args])


def test_version_option():
    result = invoke("--version")
    assert result.exit_code == 0
    assert "SiteDiff" in result.output


def test_diff_all_identical_exits_zero(config_file):
    result = invoke("--config", str(config_file), "diff")
    assert result.exit_code == 0
    assert "1 paths: 1 identical" in result.output
    sitediff = FakeSiteDiff.instances[0]
    report, output_dir, before_report, after_report, failures = sitediff.dumped
    assert before_report is None
    assert failures == Path(output_dir) / "failures.txt"
    assert sitediff.events is not None


def test_diff_with_failures_exits_one(config_file, fake_sitediff):
    fake_sitediff.report = Report(
        "http://old",
        "http://new",
        [
            DiffResult("/", DiffStatus.IDENTICAL),
            DiffResult.failure("/contact", "before: connection refused", FetchErrorKind.CONNECTION),
        ],
    )
    result = invoke("--config", str(config_file), "diff")
    assert result.exit_code == 1
    assert "FAILED /contact" in result.output


def test_diff_overrides_reach_config(config_file, tmp_path):
    result = invoke(
        "--config", str(config_file), "diff",
        "-p", "/pricing", "-p", "docs",
        "--before", "http://localhost:8080",
        "--after-url", "http://localhost:9090/",
        "--before-report", "https://old.example.com",
        "--cached", "all",
        "--dump-dir", str(tmp_path / "dump"),
        "--concurrency", "2",
        "--run-timeout", "30",
    )
    assert result.exit_code == 0, result.output
    sitediff = FakeSiteDiff.instances[0]
    cfg = sitediff.config
    assert cfg.paths == ["/pricing", "/docs"]
    assert cfg.before.url == "http://localhost:8080"
    assert cfg.after.url == "http://localhost:9090"
    assert cfg.cached.value == "all"
    assert cfg.concurrency == 2
    assert cfg.run_timeout == 30
    assert sitediff.dumped[1] == tmp_path / "dump"
    assert sitediff.dumped[2] == "https://old.example.com"


def test_paths_and_paths_file_conflict(config_file, tmp_path):
    paths_file = tmp_path / "paths.txt"
    paths_file.write_text("/\n", encoding="utf-8")
    result = invoke("--config", str(config_file), "diff", "-p", "/", "--paths-file", str(paths_file))
    assert result.exit_code == 2
    assert FakeSiteDiff.instances == []


def test_invalid_config_exits_two(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("sanitization:\n  rules:\n    - type: regex\n      pattern: '('\n", encoding="utf-8")
    result = invoke("--config", str(bad), "diff")
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


def test_missing_url_exits_two(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = invoke("diff", "-p", "/")
    assert result.exit_code == 2


def test_show_config(config_file):
    result = invoke("--config", str(config_file), "config")
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["before"]["url"] == "http://old.example.com"
    assert data["paths"] == ["/", "/about"]
    assert data["cached"] == "before"


def test_default_config_from_working_directory(config_file, monkeypatch):
    monkeypatch.chdir(config_file.parent)
    result = invoke("config")
    assert result.exit_code == 0
    assert json.loads(result.output)["after"]["url"] == "http://new.example.com"


def test_clear_cache(config_file, tmp_path):
    cache = Cache(tmp_path / "cache", CachePolicy.from_mode("all"))
    cache.write(Side.BEFORE, "/", "a")
    cache.write(Side.AFTER, "/", "b")

    result = invoke("--config", str(config_file), "clear-cache", "--side", "after")
    assert result.exit_code == 0
    assert "Removed 1 cache entries" in result.output
    assert cache.read(Side.BEFORE, "/") is not None
    assert cache.read(Side.AFTER, "/") is None


def test_store(config_file, fake_sitediff):
    fake_sitediff.stored = [FetchResult("/", Side.BEFORE, "http://new.example.com/", content="<p/>")]
    result = invoke("--config", str(config_file), "store", "--url", "http://staging", "-p", "/")
    assert result.exit_code == 0
    assert "Visited /, cached" in result.output
    assert FakeSiteDiff.instances[0].store_args == (["/"], "http://staging")


def test_store_failure_exits_one(config_file, fake_sitediff):
    error = FetchError(FetchErrorKind.HTTP_STATUS, "http://new.example.com/x", "HTTP 404", status=404)
    fake_sitediff.stored = [FetchResult("/x", Side.BEFORE, "http://new.example.com/x", error=error)]
    result = invoke("--config", str(config_file), "store")
    assert result.exit_code == 1
    assert "Failed /x" in result.output
