"""
Общие фикстуры для тестов.
Содержит тестовую конфигурацию, фабрики строк CSV, поддельный клиент прокси
и функцию ожидания, которая только запоминает задержки.
"""
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from instapaper_importer.config import Config
from instapaper_importer.models import AddBookmarkResult, Credentials, CsvRow, TokenPair

CONFIG_ENV_KEYS = [
    "PROXY_BASE_URL", "PROXY_AUTH_TIMEOUT", "PROXY_ADD_TIMEOUT",
    "IMPORT_BATCH_SIZE", "IMPORT_BATCH_DELAY", "IMPORT_MEGA_BATCH_SIZE",
    "IMPORT_MEGA_BATCH_DELAY", "IMPORT_INITIAL_DELAY", "IMPORT_MAX_DELAY",
    "IMPORT_MAX_RETRIES", "IMPORT_BACKOFF_MULTIPLIER", "IMPORT_PROGRESS_INTERVAL",
    "INSTAPAPER_CONSUMER_KEY", "INSTAPAPER_CONSUMER_SECRET", "INSTAPAPER_API_BASE",
    "SERVER_HOST", "SERVER_PORT", "CORS_ORIGINS", "LOG_LEVEL", "LOG_FILE",
    "INSTAPAPER_USERNAME", "INSTAPAPER_PASSWORD",
]


@pytest.fixture(autouse=True)
def isolated_env():
    """load_dotenv пишет в os.environ, поэтому окружение восстанавливается после теста."""
    saved = dict(os.environ)
    for key in CONFIG_ENV_KEYS:
        os.environ.pop(key, None)
    yield
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture(autouse=True)
def reset_logging():
    """setup_logging заменяет обработчики корневого логгера, они снимаются после теста."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            handler.close()
            root.removeHandler(handler)
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


@pytest.fixture
def temp_dir():
    """Создает временную директорию для тестов."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def sample_env(temp_dir):
    """Создает тестовый .env файл."""
    env_file = temp_dir / ".env"
    with open(env_file, 'w', encoding='utf-8') as f:
        f.write(f"""
PROXY_BASE_URL=http://proxy.test/api
PROXY_AUTH_TIMEOUT=5
PROXY_ADD_TIMEOUT=60
IMPORT_BATCH_SIZE=10
IMPORT_BATCH_DELAY=0
IMPORT_MEGA_BATCH_SIZE=50
IMPORT_MEGA_BATCH_DELAY=0
IMPORT_INITIAL_DELAY=0
IMPORT_MAX_DELAY=1
IMPORT_MAX_RETRIES=2
IMPORT_BACKOFF_MULTIPLIER=2
IMPORT_PROGRESS_INTERVAL=5
INSTAPAPER_CONSUMER_KEY=consumer_key
INSTAPAPER_CONSUMER_SECRET=consumer_secret
LOG_LEVEL=INFO
LOG_FILE={temp_dir}/test.log
""")
    return str(env_file)


def build_config(**overrides) -> Config:
    """Собирает Config с тестовыми значениями по умолчанию."""
    values = dict(
        proxy_base_url="http://proxy.test/api",
        proxy_auth_timeout=10.0,
        proxy_add_timeout=120.0,
        import_batch_size=25,
        import_batch_delay=2.0,
        import_mega_batch_size=100,
        import_mega_batch_delay=10.0,
        import_initial_delay=0.15,
        import_max_delay=5.0,
        import_max_retries=3,
        import_backoff_multiplier=2.0,
        import_progress_interval=5,
        instapaper_api_base="https://www.instapaper.com/api/1",
        server_host="127.0.0.1",
        server_port=4001,
        cors_origins="*",
        log_level="INFO",
        log_file="",
        instapaper_consumer_key="consumer_key",
        instapaper_consumer_secret="consumer_secret",
    )
    values.update(overrides)
    return Config(**values)


def make_rows(count: int, prefix: str = "https://example.com/article") -> List[CsvRow]:
    """Создает count строк с уникальными URL."""
    return [CsvRow(title=f"Article {i}", url=f"{prefix}/{i}") for i in range(count)]


@pytest.fixture
def credentials():
    return Credentials(username="reader@example.com", password="secret")


class FakeProxyClient:
    """
    Поддельный клиент прокси.

    Аргументы:
        auth_results: Очередь результатов authenticate (TokenPair или None)
        responses: Сценарии ответов add_bookmark по URL; последний ответ
            повторяется, если сценарий исчерпан
        default: Ответ для URL без сценария
    """

    def __init__(
        self,
        auth_results: Optional[List[Optional[TokenPair]]] = None,
        responses: Optional[Dict[str, List]] = None,
        default: Optional[AddBookmarkResult] = None,
    ):
        self.auth_results = list(auth_results) if auth_results is not None else [
            TokenPair(token="token-1", token_secret="secret-1")
        ]
        self.responses = {url: list(items) for url, items in (responses or {}).items()}
        self.default = default or AddBookmarkResult(success=True, status_code=200)
        self.auth_calls: List[Credentials] = []
        self.add_calls: List[tuple] = []

    async def authenticate(self, credentials):
        self.auth_calls.append(credentials)
        if len(self.auth_results) > 1:
            return self.auth_results.pop(0)
        return self.auth_results[0] if self.auth_results else None

    async def add_bookmark(self, tokens, row):
        self.add_calls.append((tokens, row))
        script = self.responses.get(row.url)
        if not script:
            return self.default
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    """Функция ожидания, которая запоминает задержки и сразу возвращает управление."""

    def __init__(self, on_sleep: Optional[Callable[[float], None]] = None):
        self.delays: List[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(seconds)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


RATE_LIMITED = AddBookmarkResult(success=False, error="Rate limited", retryable=True, status_code=429)
SERVER_ERROR = AddBookmarkResult(success=False, error="Server error", retryable=True, status_code=503)
BAD_REQUEST = AddBookmarkResult(success=False, error="Invalid URL", status_code=400)
ADDED = AddBookmarkResult(success=True, status_code=200)
