"""
Модуль importer.py
Движок пакетного импорта статей в Instapaper.

Строки делятся на мега-пакеты (до 100 строк, длинная пауза между ними)
и пакеты внутри мега-пакета (по 25 строк, пауза между пакетами).
Между отдельными запросами выдерживается адаптивная задержка: после успеха
она уменьшается до начальной, после ошибки растет до максимальной.
Временные ошибки (429, 5xx) повторяются с экспоненциальной задержкой.
Запросы выполняются строго по одному, порядок обновлений прогресса монотонный.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from .config import Config
from .logger import get_logger, log_error_with_context, log_function_call, log_performance
from .models import (
    AddBookmarkResult,
    Credentials,
    CsvRow,
    FailedArticle,
    ImportResult,
    ImportStatistics,
)
from .proxy_client import BookmarkProxyClient
from .session import ImportSession

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
SleepFunction = Callable[[float], Awaitable[None]]

AUTH_FAILED_MESSAGE = "Failed to authenticate"
NO_ROWS_MESSAGE = "No articles to import"
NOTHING_IMPORTED_MESSAGE = "Failed to import any articles"
UNEXPECTED_ERROR = "Unexpected error"
UNKNOWN_ERROR = "Unknown error"
CANCELLED_ERROR = "Import cancelled"


@dataclass
class RateLimitConfig:
    """
    Параметры темпа импорта. Все задержки в секундах.

    Атрибуты:
        initial_delay: Начальная и минимальная адаптивная задержка
        max_delay: Потолок адаптивной задержки и задержки повтора
        batch_size: Размер пакета
        batch_delay: Пауза между пакетами
        mega_batch_size: Размер мега-пакета (включается, если строк больше)
        mega_batch_delay: Пауза между мега-пакетами
        max_retries: Число повторов при временной ошибке
        backoff_multiplier: Основание экспоненциальной задержки повтора
        success_decay: Множитель адаптивной задержки после успеха
        failure_growth: Множитель адаптивной задержки после ошибки
        progress_interval: Прогресс сообщается на каждой N-й строке
        summary_interval: Сводка пишется в лог каждые N строк
    """
    initial_delay: float = 0.15
    max_delay: float = 5.0
    batch_size: int = 25
    batch_delay: float = 2.0
    mega_batch_size: int = 100
    mega_batch_delay: float = 10.0
    max_retries: int = 3
    backoff_multiplier: float = 2.0
    success_decay: float = 0.95
    failure_growth: float = 1.3
    progress_interval: int = 5
    summary_interval: int = 50

    def __post_init__(self) -> None:
        """
        Проверяет параметры так же, как ConfigManager проверяет .env.

        Raises:
            ValueError: Если параметры некорректны
        """
        errors = []

        for name in ("batch_size", "mega_batch_size", "progress_interval", "summary_interval"):
            value = getattr(self, name)
            if value <= 0:
                errors.append(f"{name} должен быть положительным числом: {value}")

        for name in ("initial_delay", "max_delay", "batch_delay", "mega_batch_delay", "max_retries"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name} должен быть неотрицательным числом: {value}")

        if self.initial_delay > self.max_delay:
            errors.append(
                f"initial_delay ({self.initial_delay}) не может превышать max_delay ({self.max_delay})"
            )

        if errors:
            raise ValueError(f"Некорректные параметры темпа импорта: {'; '.join(errors)}")

    @classmethod
    def from_config(cls, config: Config) -> 'RateLimitConfig':
        return cls(
            initial_delay=config.import_initial_delay,
            max_delay=config.import_max_delay,
            batch_size=config.import_batch_size,
            batch_delay=config.import_batch_delay,
            mega_batch_size=config.import_mega_batch_size,
            mega_batch_delay=config.import_mega_batch_delay,
            max_retries=config.import_max_retries,
            backoff_multiplier=config.import_backoff_multiplier,
            progress_interval=config.import_progress_interval,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Задержка перед повтором номер attempt + 1 (attempt с нуля)."""
        return min(self.initial_delay * (self.backoff_multiplier ** attempt), self.max_delay)


class CancellationToken:
    """
    Токен отмены импорта.
    cancel() прерывает запуск между строками и будит ожидающую паузу.
    Вызывается из того же цикла событий, в котором идет импорт.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        # Event создается лениво внутри работающего цикла событий
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


def chunk(items: Sequence[CsvRow], size: int) -> List[List[CsvRow]]:
    """Делит последовательность на куски не длиннее size."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


@dataclass
class _ImportRun:
    """Изменяемое состояние одного запуска. Принадлежит только движку."""
    total: int
    delay: float
    on_progress: Optional[ProgressCallback] = None
    cancel_token: Optional[CancellationToken] = None
    stats: ImportStatistics = field(default_factory=ImportStatistics)
    last_reported: int = -1
    start_time: float = field(default_factory=time.time)

    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled


class BatchImporter:
    """
    Движок пакетного импорта.

    Аргументы:
        client: Открытый клиент прокси
        rate_limit: Параметры темпа импорта
        sleep: Функция ожидания (подменяется в тестах)
    """

    def __init__(
        self,
        client: BookmarkProxyClient,
        rate_limit: Optional[RateLimitConfig] = None,
        sleep: Optional[SleepFunction] = None,
    ):
        self.client = client
        self.rate_limit = rate_limit or RateLimitConfig()
        self._sleep: SleepFunction = sleep or asyncio.sleep

        logger.debug(f"BatchImporter инициализирован: {self.rate_limit}")

    async def import_all(
        self,
        credentials: Credentials,
        rows: Iterable[CsvRow],
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ImportResult:
        """
        Импортирует все строки и возвращает итог.

        Аргументы:
            credentials: Учетные данные пользователя
            rows: Проверенные строки CSV
            on_progress: Обработчик прогресса (current, total)
            cancel_token: Токен отмены

        Возвращает:
            ImportResult: Итог импорта
        """
        rows = list(rows)
        total = len(rows)
        start_time = time.time()
        log_function_call("import_all", (), {"username": credentials.username, "total": total})

        if total == 0:
            logger.warning("Нет статей для импорта, обращения к прокси не выполняются")
            return ImportResult(
                success=False, message=NO_ROWS_MESSAGE, imported_count=0, failed_count=0
            )

        session = ImportSession(self.client)
        try:
            logger.info(f"Аутентификация пользователя {credentials.username}")
            if not await session.authenticate(credentials):
                logger.error("Импорт прерван: аутентификация не пройдена")
                return ImportResult(success=False, message=AUTH_FAILED_MESSAGE)

            run = _ImportRun(
                total=total,
                delay=self.rate_limit.initial_delay,
                on_progress=on_progress,
                cancel_token=cancel_token,
            )
            logger.info(f"Начало импорта {total} статей")
            completed = await self._process_all(session, rows, run)
        finally:
            session.close()

        stats = run.stats
        if completed:
            self._report_progress(run, total, force=True)
        else:
            self._report_progress(run, stats.attempted, force=True)

        duration = time.time() - start_time
        log_performance(
            "import_all",
            duration,
            f"success={stats.success_count}, failed={stats.failed_count}, total={total}",
        )
        logger.info(
            f"Импорт завершен: {stats.success_count} успешно, {stats.failed_count} с ошибками"
        )

        return self._build_result(stats, total, cancelled=not completed)

    def _partition(self, rows: List[CsvRow]) -> List[List[List[CsvRow]]]:
        """Делит строки на мега-пакеты, а мега-пакеты на пакеты."""
        rl = self.rate_limit
        if len(rows) > rl.mega_batch_size:
            mega_batches = chunk(rows, rl.mega_batch_size)
            logger.info(
                f"Обработка {len(rows)} статей в {len(mega_batches)} мега-пакетах "
                f"по {rl.mega_batch_size}"
            )
        else:
            mega_batches = [rows]

        return [chunk(mega_batch, rl.batch_size) for mega_batch in mega_batches]

    async def _process_all(
        self, session: ImportSession, rows: List[CsvRow], run: _ImportRun
    ) -> bool:
        """
        Обходит мега-пакеты и пакеты.

        Возвращает:
            bool: False если импорт был отменен
        """
        rl = self.rate_limit
        plan = self._partition(rows)

        for mega_index, batches in enumerate(plan):
            if mega_index > 0:
                logger.info(
                    f"Пауза {rl.mega_batch_delay:.1f}с перед мега-пакетом "
                    f"{mega_index + 1}/{len(plan)}"
                )
                if await self._pause(rl.mega_batch_delay, run):
                    return False

            logger.info(
                f"Мега-пакет {mega_index + 1}: {sum(len(b) for b in batches)} статей "
                f"в {len(batches)} пакетах"
            )

            for batch_index, batch in enumerate(batches):
                if not await self._process_batch(session, batch, run):
                    return False

                # После последнего пакета мега-пакета паузы нет
                if batch_index < len(batches) - 1:
                    logger.debug(
                        f"Пауза {rl.batch_delay:.1f}с после пакета {batch_index + 1}/{len(batches)}"
                    )
                    if await self._pause(rl.batch_delay, run):
                        return False

        return True

    async def _process_batch(
        self, session: ImportSession, batch: List[CsvRow], run: _ImportRun
    ) -> bool:
        rl = self.rate_limit

        for i, row in enumerate(batch):
            if run.cancelled:
                logger.warning("Импорт отменен")
                return False

            index = run.stats.attempted
            if index % rl.progress_interval == 0 or index == run.total - 1:
                self._report_progress(run, index)

            try:
                result = await self._add_with_retry(session, row, run)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_error_with_context(
                    e, {"url": row.url, "index": index, "operation": "import_row"}
                )
                result = AddBookmarkResult(success=False, error=UNEXPECTED_ERROR)

            self._record(run, row, result)

            attempted = run.stats.attempted
            if attempted % rl.summary_interval == 0:
                elapsed = time.time() - run.start_time
                logger.info(
                    f"Прогресс: {attempted}/{run.total} статей обработано "
                    f"({run.stats.success_count} успешно, {run.stats.failed_count} с ошибками) "
                    f"- {elapsed:.1f}с"
                )

            if i < len(batch) - 1:
                if await self._pause(run.delay, run):
                    return False

        return True

    async def _add_with_retry(
        self, session: ImportSession, row: CsvRow, run: _ImportRun
    ) -> AddBookmarkResult:
        """
        Добавляет статью, повторяя попытку при временной ошибке.
        Каждая временная ошибка также увеличивает адаптивную задержку.
        """
        rl = self.rate_limit
        result = AddBookmarkResult(success=False, error=UNKNOWN_ERROR)

        for attempt in range(rl.max_retries + 1):
            result = await session.add_bookmark(row)
            if result.success or not result.retryable:
                return result

            self._slow_down(run)

            if attempt >= rl.max_retries:
                logger.warning(
                    f"Исчерпаны повторы ({rl.max_retries}) для {row.url}: {result.error}"
                )
                break

            backoff = rl.backoff_delay(attempt)
            logger.info(
                f"Повтор {row.url} через {backoff:.2f}с (попытка {attempt + 1}/{rl.max_retries})"
            )
            if await self._pause(backoff, run):
                return AddBookmarkResult(success=False, error=CANCELLED_ERROR)

        return result

    def _record(self, run: _ImportRun, row: CsvRow, result: AddBookmarkResult) -> None:
        rl = self.rate_limit
        stats = run.stats

        if result.success:
            stats.success_count += 1
            run.delay = max(rl.initial_delay, run.delay * rl.success_decay)
        else:
            stats.failed_count += 1
            stats.failed_articles.append(
                FailedArticle(url=row.url, error=result.error or UNKNOWN_ERROR)
            )
            # Временные ответы уже увеличили задержку в _add_with_retry
            if not result.retryable:
                self._slow_down(run)
            logger.warning(f"Не удалось импортировать {row.url}: {result.error}")

    def _slow_down(self, run: _ImportRun) -> None:
        rl = self.rate_limit
        run.delay = min(run.delay * rl.failure_growth, rl.max_delay)
        logger.debug(f"Адаптивная задержка увеличена до {run.delay:.3f}с")

    def _report_progress(self, run: _ImportRun, current: int, force: bool = False) -> None:
        """
        Вызывает обработчик прогресса, сохраняя монотонность значений.
        Ошибка в обработчике не прерывает импорт.
        """
        if run.on_progress is None:
            return
        if current < run.last_reported or (current == run.last_reported and not force):
            return

        run.last_reported = current
        try:
            run.on_progress(current, run.total)
        except Exception as e:
            log_error_with_context(e, {"current": current, "total": run.total, "operation": "on_progress"})

    async def _pause(self, seconds: float, run: _ImportRun) -> bool:
        """
        Ждет заданное время или до отмены.

        Возвращает:
            bool: True если импорт был отменен
        """
        token = run.cancel_token
        if token is None:
            if seconds > 0:
                await self._sleep(seconds)
            return False

        if token.cancelled:
            return True
        if seconds <= 0:
            return False

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)

        return token.cancelled

    def _build_result(self, stats: ImportStatistics, total: int, cancelled: bool) -> ImportResult:
        failed_articles = list(stats.failed_articles) if stats.failed_count > 0 else None

        if cancelled:
            return ImportResult(
                success=stats.success_count > 0,
                message=f"Import cancelled after {stats.attempted} of {total} articles",
                imported_count=stats.success_count,
                failed_count=stats.failed_count,
                failed_articles=failed_articles,
                cancelled=True,
            )

        if stats.success_count == 0:
            return ImportResult(
                success=False,
                message=NOTHING_IMPORTED_MESSAGE,
                imported_count=0,
                failed_count=stats.failed_count,
                failed_articles=failed_articles,
            )

        message = f"Successfully imported {stats.success_count} articles"
        if stats.failed_count > 0:
            message += f", {stats.failed_count} failed"

        return ImportResult(
            success=True,
            message=message,
            imported_count=stats.success_count,
            failed_count=stats.failed_count,
            failed_articles=failed_articles,
        )
