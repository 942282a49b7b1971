"""
Модуль service.py
Точка входа конвейера для интерфейса: парсинг и проверка CSV,
запуск импорта с объектами ImportProgress и перехват любых
непредвиденных ошибок в итоговый ImportResult.
"""
from typing import Callable, Iterable, List, Optional, Tuple

from .config import Config
from .importer import BatchImporter, CancellationToken, RateLimitConfig
from .logger import get_logger, log_error_with_context
from .models import Credentials, CsvRow, ImportProgress, ImportResult, ValidationResult
from .parser import get_row_parser
from .proxy_client import BookmarkProxyClient
from .validator import validate_rows

logger = get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "An error occurred during the import process"

ProgressListener = Callable[[ImportProgress], None]


def prepare_rows(
    text: str, mode: str = "positional", strict: bool = False
) -> Tuple[List[CsvRow], ValidationResult]:
    """
    Разбирает и проверяет CSV до каких-либо сетевых запросов.

    Аргументы:
        text: Содержимое CSV-файла
        mode: Стратегия парсера ("positional" или "lenient")
        strict: Требовать заголовок у каждой строки

    Возвращает:
        Tuple[List[CsvRow], ValidationResult]: Строки и итог проверки
    """
    rows = get_row_parser(mode).parse(text)
    return rows, validate_rows(rows, strict=strict)


async def import_articles(
    client: BookmarkProxyClient,
    credentials: Credentials,
    rows: Iterable[CsvRow],
    on_progress: Optional[ProgressListener] = None,
    rate_limit: Optional[RateLimitConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
    importer: Optional[BatchImporter] = None,
) -> ImportResult:
    """
    Импортирует статьи и всегда возвращает ImportResult.

    Аргументы:
        client: Открытый клиент прокси
        credentials: Учетные данные пользователя
        rows: Проверенные строки CSV
        on_progress: Обработчик объектов ImportProgress
        rate_limit: Параметры темпа импорта
        cancel_token: Токен отмены
        importer: Готовый движок (если не задан, создается новый)

    Возвращает:
        ImportResult: Итог импорта
    """

    def handle_progress(current: int, total: int) -> None:
        if on_progress is not None:
            on_progress(ImportProgress.from_counts(current, total))

    engine = importer or BatchImporter(client, rate_limit=rate_limit)

    try:
        return await engine.import_all(
            credentials, rows, on_progress=handle_progress, cancel_token=cancel_token
        )
    except Exception as e:
        log_error_with_context(e, {"operation": "import_articles", "username": credentials.username})
        return ImportResult(success=False, message=GENERIC_FAILURE_MESSAGE)


async def run_import(
    config: Config,
    credentials: Credentials,
    rows: Iterable[CsvRow],
    on_progress: Optional[ProgressListener] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ImportResult:
    """
    Открывает клиент прокси по конфигурации и выполняет импорт.
    """
    try:
        async with BookmarkProxyClient.from_config(config) as client:
            return await import_articles(
                client,
                credentials,
                rows,
                on_progress=on_progress,
                rate_limit=RateLimitConfig.from_config(config),
                cancel_token=cancel_token,
            )
    except Exception as e:
        log_error_with_context(e, {"operation": "run_import", "proxy": config.proxy_base_url})
        return ImportResult(success=False, message=GENERIC_FAILURE_MESSAGE)
