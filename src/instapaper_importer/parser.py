"""
Модуль parser.py
Обеспечивает парсинг CSV-экспорта статей в список строк для импорта.
Поддерживает две стратегии: позиционную (каноническая схема
title,url,time_added,tags,status) и мягкую, которая ищет URL по содержимому.
"""
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from .logger import get_logger, log_function_call
from .models import KNOWN_STATUSES, CsvRow

logger = get_logger(__name__)

HEADER_MARKER = "title,url"
URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

PARSER_MODES = ("positional", "lenient")


def split_csv_line(line: str) -> List[str]:
    """
    Разбивает строку CSV на поля с учетом кавычек.

    Кавычка переключает режим "внутри кавычек" и в значение не попадает,
    запятая внутри кавычек считается частью данных.

    Аргументы:
        line: Строка CSV без символа перевода строки

    Возвращает:
        List[str]: Значения полей без обрамляющих кавычек
    """
    values: List[str] = []
    current: List[str] = []
    inside_quotes = False

    for char in line:
        if char == '"':
            inside_quotes = not inside_quotes
        elif char == "," and not inside_quotes:
            values.append("".join(current))
            current = []
        else:
            current.append(char)

    values.append("".join(current))
    return [value.strip().strip('"').strip() for value in values]


class RowParser(ABC):
    """
    Базовый класс парсера CSV.
    Отвечает за разбиение текста на строки и пропуск заголовка,
    сопоставление полей выполняют наследники.
    """

    mode: str = ""

    def parse(self, text: str) -> List[CsvRow]:
        """
        Парсит текст CSV и возвращает строки в исходном порядке.
        Строки без пригодного URL отбрасываются без ошибки.

        Аргументы:
            text: Содержимое CSV-файла

        Возвращает:
            List[CsvRow]: Разобранные строки
        """
        log_function_call(f"{type(self).__name__}.parse", (), {"text_length": len(text or "")})

        if not text:
            logger.info("Пустой CSV, строк для разбора нет")
            return []

        # Только \n: прочие разделители splitlines() могут встречаться в заголовках
        lines = text.split("\n")
        start_index = 1 if lines and HEADER_MARKER in lines[0].lower() else 0
        if start_index:
            logger.debug(f"Пропущена строка заголовка: {lines[0].strip()}")

        rows: List[CsvRow] = []
        dropped = 0

        for line_number, raw_line in enumerate(lines[start_index:], start=start_index + 1):
            line = raw_line.strip()
            if not line:
                continue

            row = self.build_row(split_csv_line(line))
            if row is None:
                dropped += 1
                logger.debug(f"Строка {line_number} пропущена: не найден URL")
                continue

            rows.append(row)

        logger.info(
            f"CSV разобран ({self.mode}): {len(rows)} строк, пропущено без URL: {dropped}"
        )
        return rows

    @abstractmethod
    def build_row(self, tokens: List[str]) -> Optional[CsvRow]:
        """
        Сопоставляет поля строки с атрибутами CsvRow.

        Аргументы:
            tokens: Поля строки после разбиения

        Возвращает:
            CsvRow или None, если строка не содержит URL
        """


class PositionalRowParser(RowParser):
    """
    Позиционный парсер: поле 0 - title, 1 - url, 2 - time_added,
    3 - tags, 4 - status. Детерминирован, но зависит от порядка колонок.
    """

    mode = "positional"

    def build_row(self, tokens: List[str]) -> Optional[CsvRow]:
        # Минимум нужны title и url
        if len(tokens) < 2 or not tokens[1]:
            return None

        padded = tokens + [""] * (5 - len(tokens))
        return CsvRow(
            title=padded[0],
            url=padded[1],
            time_added=padded[2],
            tags=padded[3],
            status=padded[4],
        )


class LenientRowParser(RowParser):
    """
    Мягкий парсер: URL ищется среди всех полей по префиксу http(s)://,
    статус - по ключевым словам archive/archived/unread.
    Терпим к порядку колонок, но может принять за URL любое поле,
    начинающееся с "http".
    """

    mode = "lenient"

    def build_row(self, tokens: List[str]) -> Optional[CsvRow]:
        url_index = next(
            (i for i, token in enumerate(tokens) if URL_PATTERN.match(token)), None
        )
        if url_index is None:
            return None

        rest = [(i, token) for i, token in enumerate(tokens) if i != url_index]

        status_index: Optional[int] = None
        for i, token in rest:
            if token.lower() in KNOWN_STATUSES:
                status_index = i
                break

        if status_index is None and len(tokens) == 2:
            # Две колонки: вторая по исключению считается статусом
            status_index = rest[0][0]

        title = ""
        if len(tokens) > 2:
            title = next(
                (token for i, token in rest if i != status_index and token), ""
            )

        return CsvRow(
            title=title,
            url=tokens[url_index],
            status=tokens[status_index] if status_index is not None else "",
        )


def get_row_parser(mode: str = "positional") -> RowParser:
    """
    Возвращает парсер для выбранной стратегии.

    Аргументы:
        mode: "positional" или "lenient"

    Возвращает:
        RowParser: Экземпляр парсера

    Raises:
        ValueError: Если стратегия неизвестна
    """
    normalized = (mode or "").strip().lower()
    if normalized == "positional":
        return PositionalRowParser()
    if normalized == "lenient":
        return LenientRowParser()
    raise ValueError(
        f"Неизвестный режим парсера: {mode!r}. Допустимые значения: {', '.join(PARSER_MODES)}"
    )


def parse_csv(text: str, mode: str = "positional") -> List[CsvRow]:
    """Разбирает CSV выбранной стратегией."""
    return get_row_parser(mode).parse(text)
