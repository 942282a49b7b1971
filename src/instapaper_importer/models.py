"""
Модуль models.py
Содержит модели данных конвейера импорта: строки CSV, учетные данные,
пару токенов сессии, прогресс и итог импорта.
Используется dataclass для удобного представления структур.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Значения колонки status, означающие "сразу в архив"
ARCHIVED_STATUSES = frozenset({"archive", "archived"})
KNOWN_STATUSES = frozenset({"archive", "archived", "unread"})


def is_archived_status(status: Optional[str]) -> bool:
    """
    Определяет, нужно ли отправить статью сразу в архив.
    Нераспознанные значения не считаются ошибкой и означают "unread".

    Аргументы:
        status: Значение колонки status

    Возвращает:
        bool: True для "archive"/"archived" (без учета регистра и пробелов)
    """
    if not status:
        return False
    return str(status).strip().lower() in ARCHIVED_STATUSES


@dataclass(frozen=True)
class Credentials:
    """
    Учетные данные пользователя Instapaper.
    Живут только в пределах одного запуска импорта.

    Атрибуты:
        username: Имя пользователя или email
        password: Пароль (может быть пустым)
    """
    username: str
    password: str = ""

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class CsvRow:
    """
    Одна строка CSV, предназначенная для импорта.
    Идентичность строки позиционная: дубли URL обрабатываются независимо.

    Атрибуты:
        title: Заголовок статьи
        url: Абсолютный http/https адрес
        time_added: Время добавления (непрозрачная строка)
        tags: Теги (непрозрачная строка)
        status: Статус ("archive", "archived", "unread" или иное)
    """
    title: str = ""
    url: str = ""
    time_added: str = ""
    tags: str = ""
    status: str = ""

    @property
    def is_archived(self) -> bool:
        return is_archived_status(self.status)


@dataclass(frozen=True)
class TokenPair:
    """
    Делегированный доступ, выданный Instapaper после xAuth.
    Принадлежит одной сессии импорта и не переиспользуется.
    """
    token: str
    token_secret: str

    def __repr__(self) -> str:
        return "TokenPair(token='***', token_secret='***')"


@dataclass
class AddBookmarkResult:
    """
    Результат одной попытки добавления закладки через прокси.

    Атрибуты:
        success: Закладка создана
        error: Текст ошибки
        retryable: Ошибка временная (429 или 5xx), попытку можно повторить
        status_code: HTTP-статус ответа прокси, если он был получен
    """
    success: bool
    error: Optional[str] = None
    retryable: bool = False
    status_code: Optional[int] = None


@dataclass
class ValidationResult:
    """Итог проверки строк перед импортом."""
    valid: bool
    message: Optional[str] = None


@dataclass
class ImportProgress:
    """
    Прогресс импорта для отображения в интерфейсе.

    Атрибуты:
        current: Количество обработанных строк
        total: Общее количество строк
        percentage: Процент выполнения, 0-100
        is_complete: current == total
    """
    current: int
    total: int
    percentage: int
    is_complete: bool

    @classmethod
    def from_counts(cls, current: int, total: int) -> 'ImportProgress':
        """
        Создает объект прогресса из счетчиков.
        Процент округляется половиной вверх.
        """
        if total > 0:
            percentage = int(current * 100 / total + 0.5)
        else:
            percentage = 0
        percentage = max(0, min(100, percentage))
        return cls(
            current=current,
            total=total,
            percentage=percentage,
            is_complete=current == total,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "total": self.total,
            "percentage": self.percentage,
            "isComplete": self.is_complete,
        }


@dataclass
class FailedArticle:
    """Статья, которую не удалось импортировать."""
    url: str
    error: str


@dataclass
class ImportResult:
    """
    Итог запуска импорта.

    Атрибуты:
        success: Импортирована хотя бы одна статья
        message: Сводка для пользователя
        imported_count: Количество успешно импортированных статей
        failed_count: Количество статей с ошибкой
        failed_articles: Упорядоченный список ошибок по статьям
        cancelled: Импорт был прерван токеном отмены
    """
    success: bool
    message: str
    imported_count: Optional[int] = None
    failed_count: Optional[int] = None
    failed_articles: Optional[List[FailedArticle]] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """
        Возвращает представление результата в формате интерфейса
        (camelCase, отсутствующие поля не включаются).
        """
        data: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.imported_count is not None:
            data["importedCount"] = self.imported_count
        if self.failed_count is not None:
            data["failedCount"] = self.failed_count
        if self.failed_articles is not None:
            data["failedArticles"] = [
                {"url": item.url, "error": item.error} for item in self.failed_articles
            ]
        if self.cancelled:
            data["cancelled"] = True
        return data


@dataclass
class ImportStatistics:
    """Счетчики одного запуска, накапливаемые движком импорта."""
    success_count: int = 0
    failed_count: int = 0
    failed_articles: List[FailedArticle] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.success_count + self.failed_count
