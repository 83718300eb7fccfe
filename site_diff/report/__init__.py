"""site_diff.report: выгрузка результатов запуска в каталог вывода (failures.txt, HTML, JSON)."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from site_diff.aggregator import Report
from site_diff.logger import logger
from site_diff.report.html_report import render_diff_page, render_html
from site_diff.report.json_report import render_json
from site_diff.utils import path_to_filename

FAILURES_FILE = "failures.txt"


def dump_report(
    report: Report,
    output_dir: Union[str, Path],
    before_report_url: Optional[str] = None,
    after_report_url: Optional[str] = None,
    failing_paths_file: Union[str, Path, None] = None,
    template_dir: Union[str, Path, None] = None,
) -> Path:
    """Пишет артефакты отчёта в *output_dir* и возвращает этот каталог.

    * ``failing_paths_file`` (по умолчанию ``output_dir/failures.txt``) - по
      одному падающему пути на строку в порядке обработки;
    * ``output_dir/<имя-пути>.html`` - дифф или ошибка для каждого падающего пути;
    * ``output_dir/report.html`` и ``output_dir/report.json`` - сводка.

    ``before_report_url``/``after_report_url`` меняют только отображаемые URL.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    before_url = before_report_url or report.before_url
    after_url = after_report_url or report.after_url

    for result in report.results:
        if not result.failed:
            continue
        artifact = out / path_to_filename(result.path)
        artifact.write_text(
            render_diff_page(result, before_url, after_url, template_dir), encoding="utf-8"
        )

    failures = Path(failing_paths_file) if failing_paths_file is not None else out / FAILURES_FILE
    failures.parent.mkdir(parents=True, exist_ok=True)
    failing = report.failing
    failures.write_text("".join(f"{path}\n" for path in failing), encoding="utf-8")

    render_html(report, template_dir, out / "report.html", before_url, after_url)
    render_json(report, out / "report.json")
    logger.info("Report written to %s (%d failing paths listed in %s)", out, len(failing), failures)
    return out


__all__ = ["dump_report", "render_json", "render_html", "FAILURES_FILE"]
