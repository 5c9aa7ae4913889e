"""
Точка входа воркера и beat:

    celery -A stock_push.celery_app worker -l info
    celery -A stock_push.celery_app beat -l info
"""
from stock_push.celery_shared import celery
from stock_push.core.config import settings
from stock_push.core.push_config import push_sync_config, update_config_for_environment
from stock_push.utils.logging_config import setup_project_logging

# Импорт регистрирует задачи в Celery
from stock_push.services import push_tasks  # noqa: F401

setup_project_logging()
update_config_for_environment(settings.ENVIRONMENT, push_sync_config)


DEFAULT_BEAT_SCHEDULE = {
    'process-pending-movements': {
        'task': 'stock_push.services.push_tasks.process_pending_movements',
        'schedule': float(push_sync_config.worker_interval_seconds),
        'kwargs': {'limit': push_sync_config.processing_batch_size}
    },
    'monitor-push-queue-health': {
        'task': 'stock_push.services.push_tasks.monitor_push_queue_health',
        'schedule': 600.0  # 10 минут
    },
}

celery.conf.beat_schedule = DEFAULT_BEAT_SCHEDULE
