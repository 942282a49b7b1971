"""
Модуль utils.py
Содержит вспомогательные утилиты: проверку URL, форматирование
длительности и трекер прогресса импорта для консольного вывода.
"""

import logging
import time
from typing import Optional
from urllib.parse import urlparse

from .models import ImportProgress

# Настройка логера для модуля
logger = logging.getLogger(__name__)


class ValidationUtils:
    """Утилиты для валидации данных."""

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Проверяет корректность URL.

        Аргументы:
            url: URL для проверки

        Возвращает:
            bool: True если URL абсолютный http/https с хостом, иначе False
        """
        try:
            result = urlparse(url.strip())
            return all([result.scheme in ["http", "https"], result.netloc])
        except (AttributeError, ValueError):
            return False


class DateUtils:
    """Утилиты для работы с датами и временем."""

    @staticmethod
    def format_duration(seconds: float) -> str:
        """
        Форматирует продолжительность в человекочитаемый вид.

        Аргументы:
            seconds: Продолжительность в секундах

        Возвращает:
            str: Отформатированная продолжительность
        """
        if seconds < 60:
            return f"{seconds:.1f} сек"
        elif seconds < 3600:
            minutes = seconds / 60
            return f"{minutes:.1f} мин"
        else:
            hours = seconds / 3600
            return f"{hours:.1f} час"


class ProgressTracker:
    """
    Отображает прогресс импорта в логе.
    Используется CLI как обработчик обновлений ImportProgress.
    """

    def __init__(self, description: str = "Импорт статей", log_interval: float = 5.0):
        """
        Инициализация трекера прогресса.

        Аргументы:
            description: Описание операции
            log_interval: Минимальный интервал между сообщениями, секунды
        """
        self.description = description
        self.start_time = time.time()
        self.last_log_time = 0.0
        self.log_interval = log_interval
        self.last_progress: Optional[ImportProgress] = None

    def update(self, progress: ImportProgress) -> None:
        """
        Принимает очередное обновление прогресса.
        Логирует не чаще log_interval и всегда при завершении.

        Аргументы:
            progress: Текущий прогресс импорта
        """
        self.last_progress = progress
        current_time = time.time()

        if current_time - self.last_log_time >= self.log_interval or progress.is_complete:
            self._log_progress(progress)
            self.last_log_time = current_time

    def get_elapsed_time(self) -> float:
        return time.time() - self.start_time

    def get_estimated_remaining_time(self) -> Optional[float]:
        """
        Возвращает оценку оставшегося времени.

        Возвращает:
            float: Оставшееся время в секундах или None если невозможно оценить
        """
        progress = self.last_progress
        if progress is None or progress.current == 0:
            return None

        elapsed_time = self.get_elapsed_time()
        items_per_second = progress.current / elapsed_time if elapsed_time > 0 else 0
        remaining_items = progress.total - progress.current

        return remaining_items / items_per_second if items_per_second > 0 else None

    def _log_progress(self, progress: ImportProgress) -> None:
        elapsed = DateUtils.format_duration(self.get_elapsed_time())

        remaining_time = self.get_estimated_remaining_time()
        remaining_str = (
            f", осталось: {DateUtils.format_duration(remaining_time)}"
            if remaining_time
            else ""
        )

        logger.info(
            f"{self.description}: {progress.current}/{progress.total} "
            f"({progress.percentage}%), затрачено: {elapsed}{remaining_str}"
        )
