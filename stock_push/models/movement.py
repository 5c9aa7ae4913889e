from datetime import datetime
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import JSON, Column, Index
from enum import Enum

from stock_push.utils.date_utils import utcnow


class MovementType(str, Enum):
    """Тип складского движения во внешней системе."""
    INGRESO = "ingreso"  # поступление (отмена/возврат заказа)
    EGRESO = "egreso"    # списание (оплаченный заказ)


class MovementStatus(str, Enum):
    """Статусы движения в очереди."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (MovementStatus.PENDING, MovementStatus.PROCESSING)


class InventoryMovement(SQLModel, table=True):
    """
    Движение остатков, ожидающее отправки во внешнюю платформу.

    Записи никогда не удаляются: очередь одновременно является журналом аудита.
    Порядок отправки строгий только внутри пары (store_id, sku).
    """
    __tablename__ = "inventory_movements_queue"
    __table_args__ = (
        Index("idx_inventory_movements_claim", "store_id", "sku", "created_at"),
        Index("idx_inventory_movements_dedup", "store_id", "order_id", "sku", "movement_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    # Идентификация
    tenant_id: int = Field(index=True, description="ID арендатора")
    store_id: int = Field(index=True, description="ID магазина")
    integration_id: int = Field(description="ID интеграции, куда отправляется движение")

    # Данные движения
    movement_type: MovementType = Field(description="ingreso / egreso")
    sku: str = Field(max_length=255, description="SKU товара")
    quantity: int = Field(description="Количество (строго положительное)")
    order_id: Optional[str] = Field(default=None, max_length=255, description="ID заказа-источника")
    event_type: str = Field(max_length=50, description="Тег события-источника (orders/paid, ...)")
    movement_metadata: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON),
        description="Произвольные данные источника (productName, originalEvent)"
    )

    # Жизненный цикл
    status: MovementStatus = Field(default=MovementStatus.PENDING, index=True, description="Статус движения")
    attempts: int = Field(default=0, description="Количество выполненных попыток")
    max_attempts: int = Field(default=3, description="Лимит попыток, фиксируется при создании")
    last_attempt_at: Optional[datetime] = Field(default=None, description="Время последней попытки")
    next_attempt_at: Optional[datetime] = Field(default=None, index=True, description="Время следующей попытки")
    error_message: Optional[str] = Field(default=None, description="Последняя ошибка")
    created_at: datetime = Field(default_factory=utcnow, index=True, description="Время создания")
    processed_at: Optional[datetime] = Field(default=None, description="Время успешной отправки")

    # Захват воркером
    claimed_by: Optional[str] = Field(default=None, max_length=100, description="Воркер, держащий аренду")
    lease_expires_at: Optional[datetime] = Field(default=None, description="Окончание аренды")

    def lease_expired(self, now: datetime) -> bool:
        """Истекла ли аренда воркера (или ее нет)."""
        return self.lease_expires_at is None or self.lease_expires_at <= now

    @property
    def product_name_hint(self) -> Optional[str]:
        metadata = self.movement_metadata or {}
        return metadata.get("productName")
