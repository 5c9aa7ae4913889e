import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func
from sqlmodel import Session, select

from stock_push.core.push_config import PushSyncConfig, push_sync_config
from stock_push.models.movement import InventoryMovement, MovementStatus
from stock_push.schemas.inventory_push import QueueHealth, SyncStats
from stock_push.utils.date_utils import utcnow


class PushStatsService:
    """
    Статистика очереди движений, пересчитывается при каждом запросе.

    Кэша нет: клиент опрашивает ее раз в ~30 секунд.
    """

    def __init__(
        self,
        session: Session,
        config: PushSyncConfig = push_sync_config,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session = session
        self.config = config
        self.clock = clock
        self.logger = logging.getLogger("stock.push.stats")

    def _count(self, *conditions) -> int:
        return self.session.exec(
            select(func.count()).select_from(InventoryMovement).where(*conditions)
        ).one()

    def get_stats(self, store_id: int) -> SyncStats:
        """
        Снимок статистики магазина за скользящее окно (по умолчанию 24 часа).

        completed считается по processed_at, failed по last_attempt_at.
        success_rate = completed / (completed + failed), 1.0 если делить не на что.
        """
        window_start = self.clock() - timedelta(hours=self.config.stats_window_hours)

        pending = self._count(
            InventoryMovement.store_id == store_id,
            InventoryMovement.status == MovementStatus.PENDING
        )
        processing = self._count(
            InventoryMovement.store_id == store_id,
            InventoryMovement.status == MovementStatus.PROCESSING
        )
        completed = self._count(
            InventoryMovement.store_id == store_id,
            InventoryMovement.status == MovementStatus.COMPLETED,
            InventoryMovement.processed_at >= window_start
        )
        failed = self._count(
            InventoryMovement.store_id == store_id,
            InventoryMovement.status == MovementStatus.FAILED,
            InventoryMovement.last_attempt_at >= window_start
        )

        total = completed + failed
        return SyncStats(
            pending=pending,
            processing=processing,
            completed_24h=completed,
            failed_24h=failed,
            success_rate=completed / total if total else 1.0
        )

    def queue_health(self) -> QueueHealth:
        """
        Состояние очереди по всем магазинам.

        warning: pending больше monitoring_max_pending_operations или есть
        pending старше monitoring_stale_operation_hours.
        """
        now = self.clock()
        try:
            pending = self._count(InventoryMovement.status == MovementStatus.PENDING)
            processing = self._count(InventoryMovement.status == MovementStatus.PROCESSING)
            failed = self._count(InventoryMovement.status == MovementStatus.FAILED)
            stale = self._count(
                InventoryMovement.status == MovementStatus.PENDING,
                InventoryMovement.created_at < now - timedelta(hours=self.config.monitoring_stale_operation_hours)
            )

            healthy = pending < self.config.monitoring_max_pending_operations and stale == 0
            return QueueHealth(
                pending_operations=pending,
                processing_operations=processing,
                failed_operations=failed,
                stale_operations=stale,
                health_status="healthy" if healthy else "warning",
                last_updated=now.isoformat()
            )

        except Exception as e:
            self.logger.error(f"Error getting queue health: {e}")
            return QueueHealth(
                pending_operations=0,
                processing_operations=0,
                failed_operations=0,
                stale_operations=0,
                health_status="error",
                last_updated=now.isoformat(),
                error=str(e)
            )
