"""
Модуль validator.py
Проверяет разобранные строки CSV перед запуском импорта.
Проверка не имеет побочных эффектов и останавливается на первой ошибке.
"""
from typing import Sequence

from .logger import get_logger
from .models import CsvRow, ValidationResult
from .utils import ValidationUtils

logger = get_logger(__name__)


def validate_rows(rows: Sequence[CsvRow], strict: bool = False) -> ValidationResult:
    """
    Проверяет, что каждая строка содержит корректный абсолютный URL.

    Аргументы:
        rows: Разобранные строки CSV
        strict: Дополнительно требовать непустой заголовок

    Возвращает:
        ValidationResult: valid=True или первая найденная ошибка
    """
    if not rows:
        logger.warning("Валидация не пройдена: CSV не содержит строк")
        return ValidationResult(valid=False, message="CSV file is empty")

    for index, row in enumerate(rows, start=1):
        if not row.url or not ValidationUtils.is_valid_url(row.url):
            message = f'Row {index} contains an invalid URL: "{row.url}"'
            logger.warning(f"Валидация не пройдена: строка {index}, некорректный URL: {row.url!r}")
            return ValidationResult(valid=False, message=message)

        if strict and not row.title:
            logger.warning(f"Валидация не пройдена: строка {index} без заголовка")
            return ValidationResult(valid=False, message=f"Row {index} is missing a title")

    logger.debug(f"Валидация пройдена: {len(rows)} строк, strict={strict}")
    return ValidationResult(valid=True)
