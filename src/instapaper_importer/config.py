"""
Модуль config.py
Управляет конфигурацией приложения через .env-файл.
Обеспечивает валидацию и доступ к параметрам импорта, прокси и логирования.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .logger import get_logger

logger = get_logger(__name__)


@dataclass
class Config:
    """
    Класс конфигурации приложения.
    Все поля загружаются из .env-файла.
    """

    # Клиент прокси
    proxy_base_url: str
    proxy_auth_timeout: float
    proxy_add_timeout: float

    # Параметры пакетного импорта (задержки в секундах)
    import_batch_size: int
    import_batch_delay: float
    import_mega_batch_size: int
    import_mega_batch_delay: float
    import_initial_delay: float
    import_max_delay: float
    import_max_retries: int
    import_backoff_multiplier: float
    import_progress_interval: int

    # Прокси-сервер и Instapaper API
    instapaper_api_base: str
    server_host: str
    server_port: int
    cors_origins: str

    # Настройки логирования
    log_level: str
    log_file: str

    instapaper_consumer_key: Optional[str] = None
    instapaper_consumer_secret: Optional[str] = None

    @property
    def cors_origins_list(self) -> list[str]:
        """Список разрешенных origin для CORS."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class ConfigManager:
    """
    Менеджер конфигурации приложения.
    Загружает параметры из .env-файла и предоставляет валидацию.
    """

    def __init__(self, env_path: Optional[str] = None):
        """
        Инициализация менеджера конфигурации.

        Аргументы:
            env_path: Путь к .env-файлу (по умолчанию .env в текущей директории)
        """
        logger.debug(f"Инициализация ConfigManager с env_path: {env_path}")

        load_dotenv(env_path or ".env", override=True)
        self.config = self._load_config()
        self._validate_config()

        logger.info("ConfigManager успешно инициализирован")
        logger.debug(
            f"Загружена конфигурация: proxy_base_url={self.config.proxy_base_url}, "
            f"log_level={self.config.log_level}"
        )

    def _load_config(self) -> Config:
        """
        Загружает конфигурацию из переменных окружения.

        Возвращает:
            Config: Объект с загруженной конфигурацией

        Raises:
            ValueError: Если числовой параметр не удалось преобразовать
        """
        logger.debug("Загрузка конфигурации из переменных окружения")

        try:
            config = Config(
                proxy_base_url=os.getenv("PROXY_BASE_URL", "http://localhost:4001/api"),
                proxy_auth_timeout=float(os.getenv("PROXY_AUTH_TIMEOUT", "10")),
                proxy_add_timeout=float(os.getenv("PROXY_ADD_TIMEOUT", "120")),
                import_batch_size=int(os.getenv("IMPORT_BATCH_SIZE", "25")),
                import_batch_delay=float(os.getenv("IMPORT_BATCH_DELAY", "2.0")),
                import_mega_batch_size=int(os.getenv("IMPORT_MEGA_BATCH_SIZE", "100")),
                import_mega_batch_delay=float(os.getenv("IMPORT_MEGA_BATCH_DELAY", "10.0")),
                import_initial_delay=float(os.getenv("IMPORT_INITIAL_DELAY", "0.15")),
                import_max_delay=float(os.getenv("IMPORT_MAX_DELAY", "5.0")),
                import_max_retries=int(os.getenv("IMPORT_MAX_RETRIES", "3")),
                import_backoff_multiplier=float(os.getenv("IMPORT_BACKOFF_MULTIPLIER", "2.0")),
                import_progress_interval=int(os.getenv("IMPORT_PROGRESS_INTERVAL", "5")),
                instapaper_api_base=os.getenv(
                    "INSTAPAPER_API_BASE", "https://www.instapaper.com/api/1"
                ),
                server_host=os.getenv("SERVER_HOST", "0.0.0.0"),
                server_port=int(os.getenv("SERVER_PORT", "4001")),
                cors_origins=os.getenv("CORS_ORIGINS", "*"),
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                log_file=os.getenv("LOG_FILE", "./instapaper_import.log"),
                instapaper_consumer_key=os.getenv("INSTAPAPER_CONSUMER_KEY") or None,
                instapaper_consumer_secret=os.getenv("INSTAPAPER_CONSUMER_SECRET") or None,
            )

            logger.debug("Конфигурация успешно загружена из переменных окружения")
            return config

        except ValueError as e:
            logger.error(f"Ошибка при загрузке конфигурации: {e}")
            raise

    def _validate_config(self) -> None:
        """
        Валидирует параметры конфигурации.
        Собирает все ошибки и вызывает одно исключение.

        Raises:
            ValueError: Если параметры некорректны
        """
        logger.debug("Валидация конфигурации")

        c = self.config
        validation_errors = []

        if not c.proxy_base_url.startswith(("http://", "https://")):
            validation_errors.append(
                f"PROXY_BASE_URL должен начинаться с http:// или https://: {c.proxy_base_url}"
            )

        positive_checks = [
            ("PROXY_AUTH_TIMEOUT", c.proxy_auth_timeout),
            ("PROXY_ADD_TIMEOUT", c.proxy_add_timeout),
            ("IMPORT_BATCH_SIZE", c.import_batch_size),
            ("IMPORT_MEGA_BATCH_SIZE", c.import_mega_batch_size),
            ("IMPORT_MAX_DELAY", c.import_max_delay),
            ("IMPORT_PROGRESS_INTERVAL", c.import_progress_interval),
            ("SERVER_PORT", c.server_port),
        ]
        for name, value in positive_checks:
            if value <= 0:
                validation_errors.append(f"{name} должен быть положительным числом: {value}")

        non_negative_checks = [
            ("IMPORT_BATCH_DELAY", c.import_batch_delay),
            ("IMPORT_MEGA_BATCH_DELAY", c.import_mega_batch_delay),
            ("IMPORT_INITIAL_DELAY", c.import_initial_delay),
            ("IMPORT_MAX_RETRIES", c.import_max_retries),
        ]
        for name, value in non_negative_checks:
            if value < 0:
                validation_errors.append(f"{name} должен быть неотрицательным числом: {value}")

        if c.import_initial_delay > c.import_max_delay:
            validation_errors.append(
                f"IMPORT_INITIAL_DELAY ({c.import_initial_delay}) не может превышать "
                f"IMPORT_MAX_DELAY ({c.import_max_delay})"
            )

        if c.import_backoff_multiplier < 1:
            validation_errors.append(
                f"IMPORT_BACKOFF_MULTIPLIER должен быть не меньше 1: {c.import_backoff_multiplier}"
            )

        for error_msg in validation_errors:
            logger.error(error_msg)

        if validation_errors:
            logger.error(
                f"Валидация конфигурации не пройдена: {len(validation_errors)} ошибок"
            )
            raise ValueError(
                f"Ошибки валидации конфигурации: {'; '.join(validation_errors)}"
            )

        logger.info("Валидация конфигурации успешно пройдена")

    def require_consumer_credentials(self) -> None:
        """
        Проверяет наличие ключей приложения Instapaper.
        Нужны только прокси-серверу, клиент импорта их не использует.

        Raises:
            ValueError: Если ключ или секрет не заданы
        """
        missing = []
        if not self.config.instapaper_consumer_key:
            missing.append("INSTAPAPER_CONSUMER_KEY")
        if not self.config.instapaper_consumer_secret:
            missing.append("INSTAPAPER_CONSUMER_SECRET")

        if missing:
            error_msg = f"Не заданы параметры в .env-файле: {', '.join(missing)}"
            logger.error(error_msg)
            raise ValueError(error_msg)

    def get(self) -> Config:
        """
        Возвращает объект конфигурации.

        Возвращает:
            Config: Объект с конфигурацией
        """
        return self.config
