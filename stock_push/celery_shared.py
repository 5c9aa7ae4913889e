"""
 * @file: celery_shared.py
 * @description: Общие объекты Celery для использования в других модулях
 * @dependencies: core.config, database
"""

import os
from dotenv import load_dotenv
from celery import Celery

# Загружаем переменные окружения перед импортом config
load_dotenv()

# Проверяем, запущено ли приложение в Docker
is_docker = os.path.exists("/.dockerenv") or os.path.exists("/run/.containerenv")

# Если запущено в Docker, перезагружаем переменные из .env.docker
if is_docker:
    load_dotenv(".env.docker", override=True)

from stock_push.core.config import settings
from stock_push.database import SessionLocal  # noqa: F401

# Инициализация Celery
celery = Celery(
    "stock_push",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["stock_push.services.push_tasks"]
)

# Настройка Celery
celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    worker_hijack_root_logger=False,  # Логированием управляет setup_project_logging
    worker_log_format='[%(asctime)s: %(levelname)s/%(processName)s] %(message)s',
    worker_task_log_format='[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s',
    broker_connection_retry_on_startup=True
)
