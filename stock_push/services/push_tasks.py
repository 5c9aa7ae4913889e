"""
Celery задачи очереди складских движений.
Включает цикл обработки очереди и мониторинг ее состояния.
"""

import logging
from typing import Optional

from stock_push.celery_shared import celery, SessionLocal
from stock_push.core.push_config import push_sync_config
from stock_push.services.adapters import AdapterRegistry
from stock_push.services.dispatcher import MovementDispatcher
from stock_push.services.stats_service import PushStatsService

logger = logging.getLogger(__name__)


@celery.task(
    bind=True,
    name="stock_push.services.push_tasks.process_pending_movements",
    autoretry_for=(Exception,),
    retry_kwargs={'max_retries': 3, 'countdown': 60}
)
def process_pending_movements(self, limit: Optional[int] = None):
    """
    Один цикл диспетчера по всем магазинам с готовыми движениями.

    Args:
        limit: Размер пачки на магазин (по умолчанию processing_batch_size)

    Returns:
        Dict: Сводка цикла
    """
    try:
        session = SessionLocal()
        try:
            dispatcher = MovementDispatcher(
                session=session,
                adapters=AdapterRegistry.from_config(push_sync_config),
                config=push_sync_config
            )
            result = dispatcher.dispatch_pending(limit=limit)

            logger.info(
                f"Обработано {result.processed} движений: {result.succeeded} успешно, "
                f"{result.retried} отложено, {result.failed} неудачно, {result.unmapped} без привязки SKU"
            )

            return {
                "status": "success",
                "processed": result.processed,
                "succeeded": result.succeeded,
                "retried": result.retried,
                "failed": result.failed,
                "unmapped": result.unmapped,
                "errors": result.errors,
                "task_id": self.request.id
            }

        finally:
            session.close()

    except Exception as e:
        logger.error(f"Ошибка при обработке очереди движений: {e}")
        raise


@celery.task(
    bind=True,
    name="stock_push.services.push_tasks.monitor_push_queue_health",
    autoretry_for=(Exception,),
    retry_kwargs={'max_retries': 2, 'countdown': 180}
)
def monitor_push_queue_health(self):
    """
    Мониторинг очереди: объем pending, застрявшие и упавшие движения.

    Returns:
        Dict: Статистика состояния очереди
    """
    try:
        session = SessionLocal()
        try:
            health = PushStatsService(session).queue_health()

            if health.health_status in ("warning", "error"):
                logger.warning(
                    f"Очередь движений: статус {health.health_status} "
                    f"(pending={health.pending_operations}, stale={health.stale_operations}, "
                    f"failed={health.failed_operations})"
                )
            else:
                logger.info(f"Мониторинг очереди: статус {health.health_status}")

            return {
                "status": "success",
                "health_data": health.model_dump(),
                "task_id": self.request.id
            }

        finally:
            session.close()

    except Exception as e:
        logger.error(f"Ошибка при мониторинге очереди: {e}")
        raise
