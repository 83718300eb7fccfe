#!/usr/bin/env python3
"""
Точка входа SiteDiff для командной строки.

Команды:
  diff         Сравнить before/after по всем путям и записать отчёт
  store        Сохранить текущую версию сайта в кэш "before"
  config       Показать итоговую конфигурацию
  clear-cache  Очистить кэш страниц

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: sitediff.yaml, если есть)
  --directory DIR     Перейти в каталог перед запуском
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stderr, если не указан)
  --log-format FORMAT Формат логирования

Коды выхода diff:
  0  все пути совпали
  1  есть различающиеся или упавшие пути
  2  ошибка конфигурации

Пример:
  site_diff diff --before https://old.example.com --after https://new.example.com -p / -p /about
"""
import os
import sys
from collections import Counter
from pathlib import Path

import click

from site_diff import __version__
from site_diff.cache import Cache, CacheMode, CachePolicy
from site_diff.config import DEFAULT_CONFIG, SiteDiffConfig, load_config
from site_diff.crawler.models import Side
from site_diff.engine import SiteDiff
from site_diff.errors import ConfigurationError
from site_diff.events import ProgressChannel
from site_diff.logger import init_logging
from site_diff.report import FAILURES_FILE

CONTEXT_SETTINGS = dict(help_option_names=["--help"])

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG_ERROR = 2


def print_error(message: str, code: int = EXIT_CONFIG_ERROR):
    click.secho(message, fg='red', err=True)
    sys.exit(code)


def _report_progress(events: ProgressChannel) -> None:
    outcomes = Counter(event.outcome.value for event in events.drain())
    if outcomes:
        click.echo(', '.join(f'{name}: {count}' for name, count in sorted(outcomes.items())))
    if events.dropped:
        click.echo(f'{events.dropped} progress events dropped')


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteDiff, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--directory', '-C', 'directory',
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help='Перейти в каталог перед запуском.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, directory, log_level, log_file, log_format):
    """Группа команд SiteDiff CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    if directory:
        os.chdir(directory)
    try:
        if config_path is None and not DEFAULT_CONFIG.exists():
            cfg = SiteDiffConfig()
        else:
            cfg = load_config(config_path)
    except (ConfigurationError, FileNotFoundError) as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('diff', context_settings=CONTEXT_SETTINGS)
@click.option('--paths', '-p', 'paths', multiple=True, help='Проверить только эти пути (можно повторять).')
@click.option(
    '--paths-file', '--paths-from-file', 'paths_file',
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help='Читать пути из файла, по одному на строку.'
)
@click.option('--before', '--before-url', 'before', default=None, help='Базовый URL версии "до".')
@click.option('--after', '--after-url', 'after', default=None, help='Базовый URL версии "после".')
@click.option(
    '--before-report', '--before-url-report', 'before_report',
    default=None,
    help='URL "до" для отчёта (например, при пробросе портов).'
)
@click.option(
    '--after-report', '--after-url-report', 'after_report',
    default=None,
    help='URL "после" для отчёта.'
)
@click.option(
    '--cached', 'cached',
    default=None,
    type=click.Choice([m.value for m in CacheMode]),
    help='Какие стороны брать из кэша, если есть (default: before).'
)
@click.option(
    '--dump-dir', 'dump_dir',
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help='Каталог для отчёта (default: output).'
)
@click.option('--concurrency', type=click.IntRange(min=1), default=None, help='Одновременных запросов.')
@click.option('--run-timeout', 'run_timeout', type=float, default=None, help='Таймаут всего запуска (секунд).')
@click.pass_context
def diff(ctx, paths, paths_file, before, after, before_report, after_report, cached, dump_dir,
         concurrency, run_timeout):
    """Сравнить страницы двух версий сайта."""
    if paths and paths_file:
        print_error("Can't have both --paths-file and --paths")
    try:
        cfg = ctx.obj['config'].with_overrides(
            paths=list(paths) or None,
            paths_file=paths_file,
            before_url=before,
            after_url=after,
            cached=cached,
            output_dir=dump_dir,
            concurrency=concurrency,
            run_timeout=run_timeout,
        )
        events = ProgressChannel()
        sitediff = SiteDiff(cfg, events=events)
        report = sitediff.run_sync()
    except ConfigurationError as e:
        print_error(f'Invalid configuration: {e}')

    _report_progress(events)
    out = sitediff.dump(
        report, cfg.output_dir, before_report, after_report, Path(cfg.output_dir) / FAILURES_FILE
    )
    click.echo(report.summary())
    for path in report.failing:
        click.secho(f'FAILED {path}', fg='red')
    click.echo(f'Report: {out / "report.html"}')
    ctx.exit(EXIT_OK if report.succeeded else EXIT_FAILURES)


@cli.command('store', context_settings=CONTEXT_SETTINGS)
@click.option('--url', 'url', default=None, help='Базовый URL (default: after.url из конфига).')
@click.option('--paths', '-p', 'paths', multiple=True, help='Сохранить только эти пути.')
@click.pass_context
def store(ctx, url, paths):
    """Сохранить текущее содержимое сайта для последующего сравнения."""
    cfg = ctx.obj['config']
    try:
        results = SiteDiff(cfg).store_sync(list(paths) or None, url)
    except ConfigurationError as e:
        print_error(f'Invalid configuration: {e}')
    for result in results:
        if result.ok:
            click.echo(f'Visited {result.path}, cached')
        else:
            click.secho(f'Failed {result.path}: {result.error}', fg='red', err=True)
    ctx.exit(EXIT_OK if all(r.ok for r in results) else EXIT_FAILURES)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


@cli.command('clear-cache', context_settings=CONTEXT_SETTINGS)
@click.option('--side', type=click.Choice([s.value for s in Side]), default=None,
              help='Очистить только эту сторону.')
@click.pass_context
def clear_cache(ctx, side):
    """Удалить сохранённые страницы из кэша."""
    cfg = ctx.obj['config']
    removed = Cache(cfg.cache_dir, CachePolicy()).clear(Side(side) if side else None)
    click.echo(f'Removed {removed} cache entries from {cfg.cache_dir}')


if __name__ == "__main__":
    cli()
