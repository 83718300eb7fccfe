"""site_diff.report.html_report: HTML-страницы отчёта с помощью Jinja2."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from site_diff.aggregator import Report
from site_diff.differ import DiffResult
from site_diff.utils import join_url, path_to_filename

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


def _environment(template_dir: Union[Path, str, None]) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(template_dir or DEFAULT_TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
        keep_trailing_newline=True,
    )


def _line_class(line: str) -> str:
    if line.startswith(("+++", "---")):
        return "file"
    if line.startswith("@@"):
        return "hunk"
    if line.startswith("+"):
        return "add"
    if line.startswith("-"):
        return "del"
    return "ctx"


def render_diff_page(
    result: DiffResult,
    before_url: str,
    after_url: str,
    template_dir: Union[Path, str, None] = None,
) -> str:
    """Рендерит страницу одного пути: унифицированный дифф либо сообщение об ошибке.

    ``before_url``/``after_url`` - базовые URL для показа (могут отличаться от
    тех, с которых реально загружались страницы).
    """
    env = _environment(template_dir)
    template = env.get_template("diff.html.j2")
    before_page = join_url(before_url, result.path)
    after_page = join_url(after_url, result.path)
    lines: List[dict[str, str]] = []
    if result.detail is not None:
        lines = [
            {"text": line, "cls": _line_class(line)}
            for line in result.detail.unified_lines(before_page, after_page)
        ]
    context: dict[str, Any] = {
        "result": result,
        "before_page": before_page,
        "after_page": after_page,
        "lines": lines,
    }
    return template.render(**context)


def render_index(
    report: Report,
    before_url: str,
    after_url: str,
    template_dir: Union[Path, str, None] = None,
) -> str:
    """Рендерит сводную страницу со ссылками на артефакты падающих путей."""
    env = _environment(template_dir)
    template = env.get_template("report.html.j2")
    rows = [
        {
            "result": r,
            "artifact": path_to_filename(r.path) if r.failed else None,
            "before_page": join_url(before_url, r.path),
            "after_page": join_url(after_url, r.path),
        }
        for r in report.results
    ]
    return template.render(report=report, rows=rows, before_url=before_url, after_url=after_url)


def render_html(
    report: Report,
    template_dir: Union[Path, str, None],
    output_path: Union[Path, str],
    before_url: Optional[str] = None,
    after_url: Optional[str] = None,
) -> Path:
    """Рендерит сводный HTML-отчёт и сохраняет его по указанному пути.

    Пример:
    ```python
    from site_diff.report.html_report import render_html
    html_path = render_html(report, None, 'output/report.html')
    ```
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    html_content = render_index(
        report, before_url or report.before_url, after_url or report.after_url, template_dir
    )
    output_path.write_text(html_content, encoding="utf-8")
    return output_path
