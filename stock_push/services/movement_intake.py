import logging
from typing import Optional

from sqlmodel import Session

from stock_push.core.push_config import PushSyncConfig, push_sync_config
from stock_push.exceptions import ValidationError
from stock_push.models.movement import InventoryMovement, MovementType
from stock_push.schemas.inventory_push import IntakeResult, OrderEvent
from stock_push.services.movement_store import MovementStore
from stock_push.utils.logging_config import log_business_event

logger = logging.getLogger("stock.push.intake")


EGRESO_EVENTS = frozenset({
    "order_paid",
    "orders/paid",
    "orders/create",
    "orders/updated",
    "order.completed",
})

INGRESO_EVENTS = frozenset({
    "order_cancelled",
    "orders/cancelled",
    "order.cancelled",
    "order_refunded",
    "refunds/create",
    "order.refunded",
})


def determine_movement_type(event_type: str) -> MovementType:
    """
    Тип движения по тегу события магазина.

    Оплата/создание заказа списывает остаток, отмена/возврат возвращает.

    Raises:
        ValidationError: Событие не влияет на остатки
    """
    if event_type in EGRESO_EVENTS:
        return MovementType.EGRESO
    if event_type in INGRESO_EVENTS:
        return MovementType.INGRESO
    raise ValidationError(f"Unsupported event type: {event_type}")


class MovementIntakeService:
    """Превращает события заказов в движения очереди."""

    def __init__(
        self,
        session: Session,
        config: PushSyncConfig = push_sync_config,
        store: Optional[MovementStore] = None
    ):
        self.config = config
        self.store = store or MovementStore(session, config=config)

    def queue_movements_from_event(self, event: OrderEvent) -> IntakeResult:
        """
        Одно движение на каждую позицию заказа.

        Позиции без SKU пропускаются. Повторное событие по тому же заказу
        (например orders/create, затем orders/paid) не создает дубль:
        ключ идемпотентности (store_id, order_id, sku, movement_type).
        Позиции заказа сохраняются одной транзакцией.
        """
        movement_type = determine_movement_type(event.event_type)
        result = IntakeResult()

        logger.info(
            f"Queueing {len(event.line_items)} movements ({movement_type.value}) for order {event.order_id}"
        )

        pending = []
        seen = set()
        for item in event.line_items:
            sku = (item.sku or "").strip()
            if not sku:
                logger.warning(f"Line item without SKU in order {event.order_id}, skipped")
                result.skipped_without_sku += 1
                continue

            existing = self.store.find_existing(event.store_id, event.order_id, sku, movement_type)
            if existing is not None or sku in seen:
                previous = existing.event_type if existing is not None else event.event_type
                logger.info(
                    f"Duplicate movement for order {event.order_id}, SKU {sku}, type {movement_type.value} "
                    f"(previous event: {previous}), skipped"
                )
                result.skipped_duplicates += 1
                continue

            seen.add(sku)
            pending.append(InventoryMovement(
                tenant_id=event.tenant_id,
                store_id=event.store_id,
                integration_id=event.integration_id,
                movement_type=movement_type,
                sku=sku,
                quantity=item.quantity,
                order_id=event.order_id,
                event_type=event.event_type,
                max_attempts=self.config.retry_max_attempts,
                movement_metadata={
                    "productName": item.product_name,
                    "originalEvent": event.metadata,
                }
            ))

        # Некорректная позиция отклоняет весь заказ
        for movement in self.store.append_many(pending):
            result.queued += 1
            result.movement_ids.append(movement.id)

        if result.queued:
            log_business_event(
                "movements_queued",
                f"Order {event.order_id}: {result.queued} movements queued",
                store_id=event.store_id,
                event_type=event.event_type,
                movement_type=movement_type.value
            )
        return result
