"""
 * @file: logging_config.py
 * @description: Конфигурация логирования сервиса отправки движений с фильтрацией технических логов
 * @dependencies: logging, os, RotatingFileHandler
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

# Директория для логов
LOG_PATH = os.getenv("LOG_PATH", os.path.join(os.getcwd(), "logs"))

# Переменные окружения для управления логированием
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_SQL_LOGS = os.getenv("ENABLE_SQL_LOGS", "false").lower() == "true"

TECHNICAL_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.dialects",
    "sqlalchemy.orm",
    "urllib3",
    "requests",
    "asyncio",
    "uvicorn",
    "gunicorn",
    "celery.worker",
    "celery.beat",
    "celery.app",
    "kombu",
    "redis",
    "psycopg",
    "psycopg2",
)

BUSINESS_LOGGERS = (
    "stock.push",
    "business",
    "errors",
)

SQL_KEYWORD_PAIRS = (
    ("SELECT", "FROM"),
    ("INSERT", "INTO"),
    ("UPDATE", "SET"),
    ("DELETE", "FROM"),
)


class BusinessLogicFilter(logging.Filter):
    """
    Фильтр для отображения только бизнес-логики, исключая технические детали
    """
    def filter(self, record):
        if record.name.startswith(TECHNICAL_LOGGERS):
            return False

        # Исключаем сообщения с SQL запросами
        if isinstance(record.msg, str):
            for first, second in SQL_KEYWORD_PAIRS:
                if first in record.msg and second in record.msg:
                    return False
            if record.msg.startswith(("BEGIN", "COMMIT", "ROLLBACK")):
                return False

        return True


class ColoredFormatter(logging.Formatter):
    """
    Форматтер с цветным выводом для консоли
    """
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        message = super().format(record)
        if getattr(record, 'use_color', False):
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            return f"{color}{message}{self.COLORS['RESET']}"
        return message


def setup_project_logging(
    log_level: Optional[str] = None,
    enable_sql_logs: Optional[bool] = None,
    log_path: Optional[str] = None,
) -> logging.Logger:
    """
    Настраивает логирование для всего проекта.

    Args:
        log_level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_sql_logs: Включить логи SQL запросов (для отладки)
        log_path: Директория для файлов логов

    Returns:
        logging.Logger: корневой логгер сервиса ("stock.push")
    """
    if log_level is None:
        log_level = LOG_LEVEL
    if enable_sql_logs is None:
        enable_sql_logs = ENABLE_SQL_LOGS
    if log_path is None:
        log_path = LOG_PATH

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    os.makedirs(log_path, exist_ok=True)

    # Очищаем все существующие хендлеры
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_formatter = ColoredFormatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )
    file_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(numeric_level)
    if not enable_sql_logs:
        console_handler.addFilter(BusinessLogicFilter())

    # Хендлер для записи в файл с ротацией
    file_handler = RotatingFileHandler(
        os.path.join(log_path, "app.log"),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(file_formatter)
    file_handler.setLevel(logging.DEBUG)

    # Хендлер для ошибок
    error_handler = RotatingFileHandler(
        os.path.join(log_path, "errors.log"),
        maxBytes=5*1024*1024,  # 5MB
        backupCount=3,
        encoding='utf-8'
    )
    error_handler.setFormatter(file_formatter)
    error_handler.setLevel(logging.ERROR)

    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(error_handler)

    for logger_name in TECHNICAL_LOGGERS:
        module_logger = logging.getLogger(logger_name)
        module_logger.setLevel(logging.WARNING if enable_sql_logs else logging.ERROR)

    for logger_name in BUSINESS_LOGGERS:
        business_logger = logging.getLogger(logger_name)
        business_logger.setLevel(logging.DEBUG)

    return logging.getLogger("stock.push")


def get_logger(name: str) -> logging.Logger:
    """
    Получить логгер с правильным именем для бизнес-логики

    Args:
        name: Имя логгера

    Returns:
        logging.Logger: Настроенный логгер
    """
    return logging.getLogger(name)


def log_business_event(event_type: str, message: str, **kwargs):
    """
    Логирует бизнес-событие в удобном формате

    Args:
        event_type: Тип события (movement_queued, push_cycle_finished, etc.)
        message: Сообщение о событии
        **kwargs: Дополнительные параметры для логирования
    """
    logger = get_logger("business")
    extra_info = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
    if extra_info:
        logger.info(f"[{event_type.upper()}] {message} | {extra_info}")
    else:
        logger.info(f"[{event_type.upper()}] {message}")


def log_error_with_context(error: Exception, context: str = "", **kwargs):
    """
    Логирует ошибку с контекстом

    Args:
        error: Исключение
        context: Контекст ошибки
        **kwargs: Дополнительные параметры
    """
    logger = get_logger("errors")
    extra_info = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
    if context:
        logger.error(f"[ERROR] {context}: {str(error)} | {extra_info}")
    else:
        logger.error(f"[ERROR] {str(error)} | {extra_info}")
