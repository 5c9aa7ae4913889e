from typing import Optional

from sqlmodel import Session

from stock_push.models.movement import InventoryMovement
from stock_push.services.movement_store import MovementStore
from stock_push.utils.logging_config import log_business_event


class ManualRetryService:
    """Ручной повтор движения из статуса failed по запросу оператора."""

    def __init__(self, session: Session, store: Optional[MovementStore] = None):
        self.session = session
        self.store = store or MovementStore(session)

    def retry(self, movement_id: int, store_id: Optional[int] = None) -> InventoryMovement:
        """
        Возвращает упавшее движение в очередь с обнуленным счетчиком попыток.

        Движение будет захвачено в ближайшем цикле диспетчера, но только после
        более ранних незавершенных движений того же SKU.

        Raises:
            NotFoundError: Движение не найдено
            InvalidTransitionError: Движение не в статусе failed (ничего не меняется)
        """
        movement = self.store.requeue_failed(movement_id, store_id=store_id)

        log_business_event(
            "manual_retry",
            f"Movement {movement.id} ({movement.sku}) requeued by operator",
            movement_id=movement.id,
            store_id=movement.store_id,
            sku=movement.sku
        )
        return movement
