"""
Модуль logger.py
Централизованная система логирования для всех модулей проекта.
Обеспечивает единообразное форматирование, ротацию файла лога
и маскирование учетных данных в отладочных сообщениях.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .config import Config


# Имена аргументов, значения которых нельзя писать в лог
SENSITIVE_KEYS = ("password", "token", "token_secret", "tokensecret", "secret", "consumer_secret")


class LoggerManager:
    """
    Менеджер логирования приложения.

    Обеспечивает централизованную настройку логирования для всех модулей.
    Поддерживает вывод в консоль и файл с ротацией.
    """

    _instance: Optional['LoggerManager'] = None
    _initialized: bool = False

    def __new__(cls) -> 'LoggerManager':
        """
        Реализация паттерна Singleton для менеджера логирования.

        Возвращает:
            LoggerManager: Единственный экземпляр менеджера
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not self._initialized:
            self._loggers: Dict[str, logging.Logger] = {}
            LoggerManager._initialized = True

    def setup_logging(self, config: 'Config', level_override: Optional[str] = None) -> None:
        """
        Настраивает логирование на основе конфигурации.

        Аргументы:
            config: Объект конфигурации приложения
            level_override: Уровень, заменяющий LOG_LEVEL (например, для --verbose)
        """
        level_name = (level_override or config.log_level).upper()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, level_name, logging.INFO))
        root_logger.handlers.clear()

        formatter = self._create_formatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if config.log_file:
            file_handler = self._create_file_handler(config.log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        # httpx пишет каждую строку запроса на уровне INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)

        logger = self.get_logger(__name__)
        logger.info(f"Логирование настроено с уровнем: {level_name}")
        logger.debug(f"Файл лога: {config.log_file}")

    def _create_formatter(self) -> logging.Formatter:
        """
        Создает форматтер для логов.

        Возвращает:
            logging.Formatter: Настроенный форматтер
        """
        return logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def _create_file_handler(self, log_file: str) -> logging.Handler:
        """
        Создает файловый обработчик с ротацией (10 МБ, 5 резервных копий).

        Аргументы:
            log_file: Путь к файлу лога

        Возвращает:
            logging.Handler: Файловый обработчик с ротацией
        """
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        return logging.handlers.RotatingFileHandler(
            filename=log_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )

    def get_logger(self, name: str) -> logging.Logger:
        """
        Получает логгер для указанного модуля.

        Аргументы:
            name: Имя модуля (обычно __name__)

        Возвращает:
            logging.Logger: Настроенный логгер
        """
        if name not in self._loggers:
            self._loggers[name] = logging.getLogger(name)
        return self._loggers[name]


# Глобальный экземпляр менеджера логирования
_logger_manager: Optional[LoggerManager] = None


def get_logger(name: str) -> logging.Logger:
    """
    Получает логгер для указанного модуля.

    Аргументы:
        name: Имя модуля (обычно __name__)

    Возвращает:
        logging.Logger: Настроенный логгер

    Пример:
        >>> from instapaper_importer.logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Импорт запущен")
    """
    global _logger_manager

    if _logger_manager is None:
        _logger_manager = LoggerManager()

    return _logger_manager.get_logger(name)


def setup_logging(config: 'Config', level_override: Optional[str] = None) -> None:
    """
    Настраивает логирование приложения.
    Вызывается один раз при запуске CLI или прокси-сервера.

    Аргументы:
        config: Объект конфигурации приложения
        level_override: Уровень, заменяющий LOG_LEVEL из конфигурации
    """
    global _logger_manager

    if _logger_manager is None:
        _logger_manager = LoggerManager()

    _logger_manager.setup_logging(config, level_override)


def mask_value(key: str, value: Any) -> Any:
    """
    Маскирует значение, если имя аргумента относится к учетным данным.

    Аргументы:
        key: Имя аргумента
        value: Значение аргумента

    Возвращает:
        Исходное значение или строку "***"
    """
    if key.lower().replace("-", "_") in SENSITIVE_KEYS and value:
        return "***"
    return value


def log_function_call(func_name: str, args: tuple = (), kwargs: Optional[dict] = None) -> None:
    """
    Логирует вызов функции с аргументами в DEBUG режиме.
    Значения паролей и токенов заменяются на "***".

    Аргументы:
        func_name: Имя функции
        args: Позиционные аргументы
        kwargs: Именованные аргументы

    Пример:
        >>> log_function_call("authenticate", (), {"username": "user", "password": "secret"})
    """
    logger = get_logger(__name__)

    if logger.isEnabledFor(logging.DEBUG):
        args_str = ", ".join(str(arg) for arg in args)
        kwargs_str = ", ".join(
            f"{k}={mask_value(k, v)}" for k, v in (kwargs or {}).items()
        )
        args_full = ", ".join(part for part in (args_str, kwargs_str) if part)
        logger.debug(f"Вызов функции: {func_name}({args_full})")


def log_performance(func_name: str, duration: float, details: str = "") -> None:
    """
    Логирует производительность операции.

    Аргументы:
        func_name: Имя операции или функции
        duration: Длительность в секундах
        details: Дополнительные детали
    """
    logger = get_logger(__name__)

    details_str = f" ({details})" if details else ""
    logger.info(f"Производительность: {func_name} выполнена за {duration:.2f}с{details_str}")


def log_error_with_context(error: Exception, context: Dict[str, Any]) -> None:
    """
    Логирует ошибку с контекстной информацией.

    Аргументы:
        error: Исключение
        context: Контекстная информация (URL, операция и т.д.)

    Пример:
        >>> try:
        ...     ...
        ... except Exception as e:
        ...     log_error_with_context(e, {"url": "https://example.com", "operation": "add"})
    """
    logger = get_logger(__name__)

    context_str = ", ".join(f"{k}={mask_value(k, v)}" for k, v in context.items())
    logger.error(f"Ошибка: {type(error).__name__}: {error} | Контекст: {context_str}")
