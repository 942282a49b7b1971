"""
Модуль main.py
Консольный интерфейс импорта: читает CSV, проверяет строки,
запрашивает учетные данные и запускает импорт через прокси.
"""

import argparse
import asyncio
import getpass
import json
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from .config import Config, ConfigManager
from .importer import CancellationToken
from .logger import (
    get_logger,
    log_error_with_context,
    log_function_call,
    log_performance,
    setup_logging,
)
from .models import Credentials, CsvRow, ImportResult
from .parser import PARSER_MODES
from .service import prepare_rows, run_import
from .utils import ProgressTracker

# Настройка логера для модуля
logger = get_logger(__name__)


def positive_int(value: str) -> int:
    """Тип аргумента argparse: целое число больше нуля."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"ожидается целое число: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"значение должно быть больше нуля: {number}")
    return number


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Парсит аргументы командной строки.

    Возвращает:
        argparse.Namespace: Объект с аргументами командной строки
    """
    parser = argparse.ArgumentParser(
        description="Массовый импорт статей из CSV в Instapaper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры использования:
  instapaper-import articles.csv --username me@example.com
  instapaper-import articles.csv --parser lenient --dry-run
  instapaper-import articles.csv --require-title --report result.json --verbose
        """,
    )

    parser.add_argument("csv_file", help="Путь к CSV-файлу со статьями")

    parser.add_argument(
        "--config", dest="config_path", help="Путь к .env файлу (по умолчанию: .env)"
    )
    parser.add_argument(
        "--username", help="Имя пользователя Instapaper (по умолчанию: INSTAPAPER_USERNAME)"
    )
    parser.add_argument(
        "--password",
        help="Пароль Instapaper (по умолчанию: INSTAPAPER_PASSWORD или запрос в консоли)",
    )
    parser.add_argument(
        "--parser",
        dest="parser_mode",
        choices=PARSER_MODES,
        default="positional",
        help="Стратегия разбора CSV: positional (title,url,time_added,tags,status) "
        "или lenient (поиск URL по содержимому)",
    )
    parser.add_argument(
        "--require-title", action="store_true", help="Считать ошибкой строки без заголовка"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Только разбор и проверка CSV, без импорта"
    )
    parser.add_argument(
        "--report", dest="report_path", help="Сохранить итог импорта в JSON-файл"
    )
    parser.add_argument(
        "--batch-size",
        type=positive_int,
        help="Размер пакета (переопределяет IMPORT_BATCH_SIZE)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Подробное логирование (DEBUG уровень)",
    )

    args = parser.parse_args(argv)
    logger.debug(f"Аргументы командной строки разобраны: csv_file={args.csv_file}")

    return args


def read_csv_file(path: Path) -> str:
    """
    Читает CSV-файл, снимая BOM при наличии.

    Аргументы:
        path: Путь к файлу

    Возвращает:
        str: Содержимое файла
    """
    log_function_call("read_csv_file", (str(path),))
    with open(path, "r", encoding="utf-8-sig") as f:
        content = f.read()
    logger.debug(f"Файл прочитан: {path}, {len(content)} символов")
    return content


def resolve_credentials(args: argparse.Namespace) -> Credentials:
    """
    Собирает учетные данные из аргументов, окружения или консоли.

    Raises:
        ValueError: Если имя пользователя не задано
    """
    username = args.username or os.getenv("INSTAPAPER_USERNAME") or ""
    if not username:
        username = input("Instapaper username: ").strip()
    if not username:
        raise ValueError("Не задано имя пользователя Instapaper")

    password = args.password
    if password is None:
        password = os.getenv("INSTAPAPER_PASSWORD")
    if password is None:
        password = getpass.getpass("Instapaper password (может быть пустым): ")

    return Credentials(username=username, password=password)


def write_report(result: ImportResult, report_path: str) -> None:
    """
    Сохраняет итог импорта в JSON.

    Аргументы:
        result: Итог импорта
        report_path: Путь к файлу отчета
    """
    path = Path(report_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
    logger.info(f"Отчет об импорте сохранен: {path}")


def print_result(result: ImportResult) -> None:
    """Выводит итог импорта в консоль."""
    print(result.message)
    for item in result.failed_articles or []:
        print(f"  FAILED {item.url}: {item.error}")


async def execute_import(
    config: Config, credentials: Credentials, rows: List[CsvRow]
) -> ImportResult:
    """
    Запускает импорт с выводом прогресса в лог.
    Ctrl+C отменяет импорт между запросами, уже отправленные статьи учитываются.
    """
    tracker = ProgressTracker("Импорт статей")
    cancel_token = CancellationToken()

    import_task = asyncio.ensure_future(
        run_import(config, credentials, rows, on_progress=tracker.update, cancel_token=cancel_token)
    )
    try:
        return await asyncio.shield(import_task)
    except asyncio.CancelledError:
        logger.warning("Получен сигнал прерывания, импорт останавливается")
        cancel_token.cancel()
        return await import_task


def main(argv: Optional[List[str]] = None) -> None:
    """
    Главная функция CLI импорта.
    """
    start_time = time.time()

    try:
        args = parse_arguments(argv)

        csv_path = Path(args.csv_file)
        if not csv_path.exists():
            log_error_with_context(
                FileNotFoundError(f"CSV-файл не найден: {csv_path}"),
                {"csv_file": str(csv_path)},
            )
            sys.exit(1)

        config_manager = ConfigManager(args.config_path)
        config = config_manager.get()

        if args.batch_size is not None:
            config.import_batch_size = args.batch_size
            logger.debug(f"Переопределен размер пакета: {config.import_batch_size}")

        setup_logging(config, "DEBUG" if args.verbose else None)

        logger.info("Запуск импорта статей в Instapaper")
        logger.info(f"CSV-файл: {csv_path}")
        logger.info(f"Стратегия разбора: {args.parser_mode}")
        logger.info(f"Режим dry-run: {args.dry_run}")

        rows, validation = prepare_rows(
            read_csv_file(csv_path), mode=args.parser_mode, strict=args.require_title
        )
        if not validation.valid:
            logger.error(f"CSV не прошел проверку: {validation.message}")
            print(validation.message)
            sys.exit(1)

        logger.info(f"К импорту готово статей: {len(rows)}")

        if args.dry_run:
            for index, row in enumerate(rows, start=1):
                archived = "archive" if row.is_archived else "unread"
                logger.info(f"[DRY-RUN] {index}/{len(rows)}: {row.title or '-'} - {row.url} ({archived})")
            print(f"{len(rows)} articles ready to import")
            return

        credentials = resolve_credentials(args)

        try:
            result = asyncio.run(execute_import(config, credentials, rows))
        except KeyboardInterrupt:
            logger.info("Импорт прерван пользователем")
            sys.exit(1)

        if args.report_path:
            write_report(result, args.report_path)

        print_result(result)

        duration = time.time() - start_time
        log_performance(
            "main",
            duration,
            f"imported={result.imported_count}, failed={result.failed_count}",
        )

        if not result.success:
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Программа прервана пользователем")
        sys.exit(1)
    except (OSError, ValueError) as e:
        log_error_with_context(e, {"operation": "main"})
        logger.error(f"Критическая ошибка: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
