import json

import pytest

from site_diff.aggregator import Report, aggregate_results
from site_diff.differ import DiffResult, diff
from site_diff.errors import FetchErrorKind
from site_diff.report import dump_report
from site_diff.sanitizer import SanitizedDocument
from site_diff.utils import path_to_filename


def sample_report() -> Report:
    same = SanitizedDocument("<p>a</p>")
    results = [
        diff(same, same, path="/"),
        DiffResult.failure("/contact", "before: connection: refused", FetchErrorKind.CONNECTION),
        diff(SanitizedDocument("a\nb"), SanitizedDocument("a\nc"), path="/about"),
    ]
    return aggregate_results(results, "http://old.local", "http://new.local")


def test_report_summary_and_failing_order():
    report = sample_report()
    assert report.failing == ["/contact", "/about"]
    assert report.summary() == "3 paths: 1 identical, 1 different, 1 errors"
    assert not report.succeeded


def test_dump_writes_failures_in_processing_order(tmp_path):
    out = dump_report(sample_report(), tmp_path / "output")
    assert (out / "failures.txt").read_text(encoding="utf-8") == "/contact\n/about\n"


def test_artifacts_only_for_failing_paths(tmp_path):
    out = dump_report(sample_report(), tmp_path / "output")
    assert (out / path_to_filename("/contact")).is_file()
    assert (out / path_to_filename("/about")).is_file()
    assert not (out / path_to_filename("/")).exists()

    error_page = (out / path_to_filename("/contact")).read_text(encoding="utf-8")
    assert "connection: refused" in error_page
    diff_page = (out / path_to_filename("/about")).read_text(encoding="utf-8")
    assert "+c" in diff_page
    assert "-b" in diff_page


def test_json_report(tmp_path):
    out = dump_report(sample_report(), tmp_path / "output")
    data = json.loads((out / "report.json").read_text(encoding="utf-8"))
    assert data["counts"] == {"identical": 1, "different": 1, "error": 1}
    assert data["failing"] == ["/contact", "/about"]
    assert data["cancelled"] is False
    assert [r["path"] for r in data["results"]] == ["/", "/contact", "/about"]
    assert data["results"][1]["error_kind"] == "connection"


def test_index_links_artifacts(tmp_path):
    out = dump_report(sample_report(), tmp_path / "output")
    index = (out / "report.html").read_text(encoding="utf-8")
    assert path_to_filename("/about") in index
    assert path_to_filename("/") not in index
    assert "http://old.local/about" in index


def test_report_urls_replace_displayed_urls(tmp_path):
    out = dump_report(
        sample_report(),
        tmp_path / "output",
        before_report_url="https://old.example.com",
        after_report_url="https://new.example.com",
    )
    index = (out / "report.html").read_text(encoding="utf-8")
    assert "https://old.example.com/about" in index
    assert "http://old.local" not in index
    page = (out / path_to_filename("/about")).read_text(encoding="utf-8")
    assert "https://new.example.com/about" in page


def test_all_identical_gives_empty_failures_file(tmp_path):
    same = SanitizedDocument("x")
    report = aggregate_results([diff(same, same, path="/")], "http://a", "http://b")
    out = dump_report(report, tmp_path / "output")
    assert (out / "failures.txt").read_text(encoding="utf-8") == ""
    assert sorted(p.name for p in out.iterdir()) == ["failures.txt", "report.html", "report.json"]


def test_custom_failing_paths_file(tmp_path):
    target = tmp_path / "ci" / "failing.txt"
    out = dump_report(sample_report(), tmp_path / "output", failing_paths_file=target)
    assert target.read_text(encoding="utf-8") == "/contact\n/about\n"
    assert not (out / "failures.txt").exists()


def test_result_for_unknown_path():
    report = sample_report()
    assert report.result_for("/about").failed
    with pytest.raises(KeyError):
        report.result_for("/nope")
