"""
Модуль proxy_server.py
Прокси-сервер между клиентом импорта и Instapaper Full API.
Хранит ключи приложения на сервере, подписывает запросы OAuth 1.0a
(HMAC-SHA1, xAuth) и приводит ответы Instapaper к виду {success, ...}.
Состояния между запросами не хранит.
"""
import argparse
import sys
from typing import Any, List, Optional, Tuple
from urllib.parse import parse_qsl

import requests
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from requests_oauthlib import OAuth1Session

from .config import Config, ConfigManager
from .logger import get_logger, log_error_with_context, setup_logging
from .models import is_archived_status

logger = get_logger(__name__)

# Коды ошибок Instapaper, которые означают временную недоступность
RATE_LIMIT_ERROR_CODES = {1040}
SERVICE_ERROR_CODES = {1500, 1550}


class AuthenticateRequest(BaseModel):
    username: str
    password: str = ""


class AddBookmarkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None
    token_secret: Optional[str] = Field(default=None, alias="tokenSecret")
    url: str
    title: Optional[str] = ""
    status: Optional[str] = ""


class InstapaperGateway:
    """
    Подписывает и отправляет запросы в Instapaper API.

    Аргументы:
        consumer_key: Ключ приложения Instapaper
        consumer_secret: Секрет приложения Instapaper
        api_base: Базовый адрес API
        auth_timeout: Таймаут получения токена, секунды
        add_timeout: Таймаут добавления закладки, секунды
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        api_base: str = "https://www.instapaper.com/api/1",
        auth_timeout: float = 10.0,
        add_timeout: float = 120.0,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.api_base = api_base.rstrip("/")
        self.auth_timeout = auth_timeout
        self.add_timeout = add_timeout

    @classmethod
    def from_config(cls, config: Config) -> 'InstapaperGateway':
        return cls(
            consumer_key=config.instapaper_consumer_key or "",
            consumer_secret=config.instapaper_consumer_secret or "",
            api_base=config.instapaper_api_base,
            auth_timeout=config.proxy_auth_timeout,
            add_timeout=config.proxy_add_timeout,
        )

    def request_access_token(self, username: str, password: str) -> requests.Response:
        """xAuth: обмен логина и пароля на токен доступа."""
        oauth = OAuth1Session(self.consumer_key, client_secret=self.consumer_secret)
        return oauth.post(
            f"{self.api_base}/oauth/access_token",
            data={
                "x_auth_username": username,
                "x_auth_password": password or "",
                "x_auth_mode": "client_auth",
            },
            timeout=self.auth_timeout,
        )

    def add_bookmark(
        self, token: str, token_secret: str, url: str, title: str, archived: bool
    ) -> requests.Response:
        """Подписанный запрос bookmarks/add от имени пользователя."""
        oauth = OAuth1Session(
            self.consumer_key,
            client_secret=self.consumer_secret,
            resource_owner_key=token,
            resource_owner_secret=token_secret,
        )
        data = {"url": url, "title": title or ""}
        if archived:
            data["archived"] = "1"
        return oauth.post(f"{self.api_base}/bookmarks/add", data=data, timeout=self.add_timeout)


def parse_token_response(body: str) -> Optional[Tuple[str, str]]:
    """
    Разбирает ответ access_token в формате application/x-www-form-urlencoded.

    Возвращает:
        (oauth_token, oauth_token_secret) или None
    """
    values = dict(parse_qsl(body or ""))
    token = values.get("oauth_token")
    token_secret = values.get("oauth_token_secret")
    if token and token_secret:
        return token, token_secret
    return None


def _response_details(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def remote_status_for(response: requests.Response, payload: Any) -> int:
    """
    Определяет HTTP-статус, который прокси вернет клиенту при ошибке.
    429 и 5xx Instapaper пробрасываются как есть, чтобы клиент мог повторить
    запрос; коды ошибок 1040/1500/1550 в теле ответа приводятся к 429/503.
    """
    if response.status_code == 429 or response.status_code >= 500:
        return response.status_code

    if isinstance(payload, list):
        codes = {
            item.get("error_code")
            for item in payload
            if isinstance(item, dict) and item.get("type") == "error"
        }
        if codes & RATE_LIMIT_ERROR_CODES:
            return 429
        if codes & SERVICE_ERROR_CODES:
            return 503

    return 400


def _is_bookmark_created(payload: Any) -> bool:
    return isinstance(payload, list) and any(
        isinstance(item, dict) and item.get("type") == "bookmark" for item in payload
    )


def get_gateway(request: Request) -> InstapaperGateway:
    return request.app.state.gateway


def create_app(config: Config, gateway: Optional[InstapaperGateway] = None) -> FastAPI:
    """
    Создает FastAPI-приложение прокси.

    Аргументы:
        config: Конфигурация (ключи приложения, CORS, таймауты)
        gateway: Шлюз Instapaper (подменяется в тестах)

    Возвращает:
        FastAPI: Готовое приложение
    """
    app = FastAPI(title="Instapaper import proxy")
    app.state.gateway = gateway or InstapaperGateway.from_config(config)

    origins: List[str] = config.cors_origins_list or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    @app.post("/api/authenticate")
    def authenticate(body: AuthenticateRequest, gw: InstapaperGateway = Depends(get_gateway)):
        try:
            response = gw.request_access_token(body.username, body.password)
        except requests.RequestException as e:
            log_error_with_context(e, {"operation": "authenticate", "username": body.username})
            return JSONResponse(
                status_code=401,
                content={"success": False, "error": "Authentication failed", "details": str(e)},
            )

        if response.status_code != 200:
            logger.warning(
                f"Instapaper отклонил аутентификацию {body.username} (HTTP {response.status_code})"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "success": False,
                    "error": "Authentication failed",
                    "details": _response_details(response),
                },
            )

        tokens = parse_token_response(response.text)
        if tokens is None:
            logger.warning(f"В ответе Instapaper нет токенов для {body.username}")
            return JSONResponse(
                status_code=401,
                content={"success": False, "error": "Failed to obtain access token"},
            )

        logger.info(f"Выданы токены для пользователя {body.username}")
        return {"success": True, "token": tokens[0], "tokenSecret": tokens[1]}

    @app.post("/api/add")
    def add(body: AddBookmarkRequest, gw: InstapaperGateway = Depends(get_gateway)):
        archived = is_archived_status(body.status)
        logger.debug(f"Запрос на добавление: url={body.url}, archived={archived}")

        if not body.token or not body.token_secret:
            logger.error("Запрос на добавление без токенов OAuth")
            return JSONResponse(
                status_code=401,
                content={"success": False, "error": "Missing authentication tokens"},
            )

        try:
            response = gw.add_bookmark(
                body.token, body.token_secret, body.url, body.title or "", archived
            )
        except requests.RequestException as e:
            log_error_with_context(e, {"operation": "add", "url": body.url})
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Failed to add article", "details": str(e)},
            )

        payload = _response_details(response)
        if response.status_code == 200 and _is_bookmark_created(payload):
            logger.info(f"Закладка создана: {body.url}")
            return {"success": True}

        status_code = remote_status_for(response, payload)
        logger.warning(
            f"Instapaper не добавил {body.url}: HTTP {response.status_code}, ответ прокси {status_code}"
        )
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": "Failed to add article", "details": payload},
        )

    return app


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Прокси-сервер для импорта статей в Instapaper")
    parser.add_argument("--config", dest="config_path", help="Путь к .env файлу (по умолчанию: .env)")
    parser.add_argument("--host", help="Адрес для прослушивания (переопределяет SERVER_HOST)")
    parser.add_argument("--port", type=int, help="Порт (переопределяет SERVER_PORT)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Подробное логирование")
    return parser.parse_args(argv)


def serve(argv: Optional[List[str]] = None) -> None:
    """
    Запускает прокси-сервер через uvicorn.
    """
    args = parse_arguments(argv)

    try:
        config_manager = ConfigManager(args.config_path)
        config_manager.require_consumer_credentials()
    except ValueError as e:
        logger.error(f"Некорректная конфигурация прокси: {e}")
        sys.exit(1)

    config = config_manager.get()
    setup_logging(config, "DEBUG" if args.verbose else None)

    host = args.host or config.server_host
    port = args.port or config.server_port
    logger.info(f"Прокси Instapaper запускается на {host}:{port}")

    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


if __name__ == "__main__":
    serve()
