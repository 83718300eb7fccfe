# site_diff/report/json_report.py

"""
Генерация JSON-отчёта для проекта SiteDiff.

Сериализация объекта Report в файл.
"""
from pathlib import Path

from site_diff.aggregator import Report


def render_json(report: Report, output_path: Path | str) -> Path:
    """
    Сохраняет отчёт report в формате JSON по указанному пути.

    :param report: объект Report с результатами сравнения
    :param output_path: путь к JSON-файлу
    :return: Path сохранённого файла
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(report.json(pretty=True) + "\n", encoding="utf-8")
    return output
