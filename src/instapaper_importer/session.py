"""
Модуль session.py
Сессия одного запуска импорта: получает пару токенов через прокси
и хранит ее только на время этого запуска.
"""
from typing import Optional

from .logger import get_logger
from .models import AddBookmarkResult, Credentials, CsvRow, TokenPair
from .proxy_client import BookmarkProxyClient

logger = get_logger(__name__)

NOT_AUTHENTICATED_ERROR = "Not authenticated"


class NotAuthenticatedError(RuntimeError):
    """Попытка использовать сессию до успешной аутентификации."""


class ImportSession:
    """
    Владелец пары токенов одного запуска импорта.
    Каждый запуск создает собственную сессию, глобального хранилища токенов нет.

    Аргументы:
        client: Открытый клиент прокси
    """

    def __init__(self, client: BookmarkProxyClient):
        self.client = client
        self._tokens: Optional[TokenPair] = None

    @property
    def is_authenticated(self) -> bool:
        return self._tokens is not None

    @property
    def tokens(self) -> TokenPair:
        """
        Текущая пара токенов.

        Raises:
            NotAuthenticatedError: Если аутентификация еще не выполнена
        """
        if self._tokens is None:
            raise NotAuthenticatedError(NOT_AUTHENTICATED_ERROR)
        return self._tokens

    async def authenticate(self, credentials: Credentials) -> bool:
        """
        Получает пару токенов через прокси.
        При неудаче ранее полученная пара не стирается, но вызывающий код
        должен считать False отсутствием пригодной сессии.

        Аргументы:
            credentials: Учетные данные пользователя

        Возвращает:
            bool: True если пара токенов получена
        """
        tokens = await self.client.authenticate(credentials)
        if tokens is None:
            logger.warning("Не удалось получить токены доступа")
            return False

        self._tokens = tokens
        logger.debug("Пара токенов сохранена в сессии импорта")
        return True

    async def add_bookmark(self, row: CsvRow) -> AddBookmarkResult:
        """
        Добавляет статью с токенами этой сессии.
        Без токенов завершается локальной ошибкой без сетевого запроса.
        """
        try:
            tokens = self.tokens
        except NotAuthenticatedError as e:
            logger.error(f"Попытка добавить статью без аутентификации: {row.url}")
            return AddBookmarkResult(success=False, error=str(e))

        return await self.client.add_bookmark(tokens, row)

    def close(self) -> None:
        """Отбрасывает пару токенов в конце запуска."""
        if self._tokens is not None:
            logger.debug("Пара токенов сессии импорта отброшена")
        self._tokens = None
