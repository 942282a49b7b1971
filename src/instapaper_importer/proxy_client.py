"""
Модуль proxy_client.py
Клиент прокси-сервера Instapaper.
Отправляет одиночные запросы authenticate и add и приводит ответы прокси
к единому сигналу: успех, постоянная ошибка или временная ошибка (429/5xx).
"""
import time
from typing import Any, Optional

import httpx

from .config import Config
from .logger import get_logger, log_error_with_context, log_function_call, log_performance
from .models import AddBookmarkResult, Credentials, CsvRow, TokenPair

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:4001/api"


def is_retryable_status(status_code: int) -> bool:
    """429 и любые 5xx считаются временными ошибками."""
    return status_code == 429 or 500 <= status_code <= 599


def _extract_error(response: httpx.Response) -> str:
    """
    Извлекает текст ошибки из ответа прокси.
    Предпочитает поле details, затем error, затем HTTP-статус.
    """
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        details = data.get("details")
        if details:
            return details if isinstance(details, str) else str(details)
        if data.get("error"):
            return str(data["error"])

    return f"HTTP error {response.status_code}"


class BookmarkProxyClient:
    """
    Клиент HTTP-поверхности прокси (POST /authenticate, POST /add).
    Не хранит токены: пара токенов передается в каждый вызов add_bookmark.

    Аргументы:
        base_url: Базовый адрес API прокси
        auth_timeout: Таймаут запроса аутентификации, секунды
        add_timeout: Таймаут добавления статьи, секунды
        transport: Транспорт httpx (используется в тестах)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        auth_timeout: float = 10.0,
        add_timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        log_function_call(
            "BookmarkProxyClient.__init__",
            (base_url,),
            {"auth_timeout": auth_timeout, "add_timeout": add_timeout},
        )

        self.base_url = base_url.rstrip("/")
        self.auth_timeout = auth_timeout
        self.add_timeout = add_timeout
        self._transport = transport
        self.session: Optional[httpx.AsyncClient] = None

        logger.info(
            f"BookmarkProxyClient инициализирован: base_url={self.base_url}, "
            f"auth_timeout={auth_timeout}s, add_timeout={add_timeout}s"
        )

    @classmethod
    def from_config(
        cls, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> 'BookmarkProxyClient':
        return cls(
            base_url=config.proxy_base_url,
            auth_timeout=config.proxy_auth_timeout,
            add_timeout=config.proxy_add_timeout,
            transport=transport,
        )

    async def __aenter__(self):
        """
        Асинхронный контекстный менеджер для создания сессии.
        """
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.add_timeout),
            limits=limits,
            transport=self._transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        logger.debug("HTTP сессия создана для BookmarkProxyClient")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """
        Асинхронный контекстный менеджер для закрытия сессии.
        """
        if self.session:
            await self.session.aclose()
            self.session = None
            logger.debug("HTTP сессия закрыта для BookmarkProxyClient")

    def _require_session(self) -> httpx.AsyncClient:
        if self.session is None:
            raise RuntimeError(
                "Сессия не инициализирована. Используйте async with BookmarkProxyClient(...) as client:"
            )
        return self.session

    async def authenticate(self, credentials: Credentials) -> Optional[TokenPair]:
        """
        Обменивает учетные данные на пару токенов через прокси.

        Аргументы:
            credentials: Учетные данные пользователя

        Возвращает:
            TokenPair при успехе, иначе None
        """
        start_time = time.time()
        log_function_call(
            "authenticate", (), {"username": credentials.username, "password": credentials.password}
        )
        session = self._require_session()

        try:
            response = await session.post(
                "/authenticate",
                json={"username": credentials.username, "password": credentials.password},
                timeout=self.auth_timeout,
            )
        except httpx.HTTPError as e:
            log_error_with_context(e, {"operation": "authenticate", "username": credentials.username})
            return None

        duration = time.time() - start_time
        log_performance("authenticate", duration, f"status={response.status_code}")

        try:
            data: Any = response.json()
        except ValueError:
            logger.warning(f"Прокси вернул не JSON при аутентификации (HTTP {response.status_code})")
            return None

        if (
            response.status_code == 200
            and isinstance(data, dict)
            and data.get("success") is True
            and data.get("token")
            and data.get("tokenSecret")
        ):
            logger.info(f"Аутентификация успешна для пользователя: {credentials.username}")
            return TokenPair(token=data["token"], token_secret=data["tokenSecret"])

        logger.warning(
            f"Аутентификация отклонена для пользователя {credentials.username} "
            f"(HTTP {response.status_code})"
        )
        return None

    async def add_bookmark(self, tokens: TokenPair, row: CsvRow) -> AddBookmarkResult:
        """
        Отправляет одну статью в Instapaper через прокси.

        Аргументы:
            tokens: Пара токенов текущей сессии
            row: Строка CSV (ключ для ошибок - url)

        Возвращает:
            AddBookmarkResult: Успех, постоянная или временная ошибка
        """
        log_function_call("add_bookmark", (row.url,), {"status": row.status})
        session = self._require_session()

        try:
            response = await session.post(
                "/add",
                json={
                    "token": tokens.token,
                    "tokenSecret": tokens.token_secret,
                    "url": row.url,
                    "title": row.title,
                    "status": row.status,
                },
                timeout=self.add_timeout,
            )
        except httpx.HTTPError as e:
            log_error_with_context(e, {"url": row.url, "operation": "add_bookmark"})
            return AddBookmarkResult(success=False, error=str(e) or type(e).__name__)

        if is_retryable_status(response.status_code):
            error = _extract_error(response)
            logger.warning(f"Временная ошибка прокси ({response.status_code}): {row.url}, {error}")
            return AddBookmarkResult(
                success=False, error=error, retryable=True, status_code=response.status_code
            )

        if response.status_code >= 400:
            error = _extract_error(response)
            logger.warning(f"Ошибка добавления ({response.status_code}): {row.url}, {error}")
            return AddBookmarkResult(success=False, error=error, status_code=response.status_code)

        try:
            data: Any = response.json()
        except ValueError:
            logger.warning(f"Некорректный ответ прокси для {row.url}")
            return AddBookmarkResult(
                success=False, error="Malformed proxy response", status_code=response.status_code
            )

        if isinstance(data, dict) and data.get("success") is True:
            logger.debug(f"Статья добавлена: {row.url}")
            return AddBookmarkResult(success=True, status_code=response.status_code)

        error = _extract_error(response) if isinstance(data, dict) else "Malformed proxy response"
        return AddBookmarkResult(success=False, error=error, status_code=response.status_code)
