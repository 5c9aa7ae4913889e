from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime

from stock_push.models.movement import InventoryMovement, MovementStatus, MovementType
from stock_push.models.unmapped_sku import UnmappedSku


class MovementCreate(BaseModel):
    """Движение от внешнего источника событий."""
    tenant_id: int
    integration_id: int
    # Тип проверяется в MovementStore.append, чтобы ошибка была доменной
    movement_type: str
    sku: str
    quantity: int
    order_id: Optional[str] = None
    event_type: str = "manual"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    max_attempts: Optional[int] = None


class MovementRead(BaseModel):
    id: int
    tenant_id: int
    store_id: int
    integration_id: int
    movement_type: MovementType
    sku: str
    quantity: int
    order_id: Optional[str] = None
    event_type: str
    status: MovementStatus
    attempts: int
    max_attempts: int
    last_attempt_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, movement: InventoryMovement) -> "MovementRead":
        return cls(
            id=movement.id,
            tenant_id=movement.tenant_id,
            store_id=movement.store_id,
            integration_id=movement.integration_id,
            movement_type=movement.movement_type,
            sku=movement.sku,
            quantity=movement.quantity,
            order_id=movement.order_id,
            event_type=movement.event_type,
            status=movement.status,
            attempts=movement.attempts,
            max_attempts=movement.max_attempts,
            last_attempt_at=movement.last_attempt_at,
            next_attempt_at=movement.next_attempt_at,
            error_message=movement.error_message,
            metadata=movement.movement_metadata or {},
            created_at=movement.created_at,
            processed_at=movement.processed_at,
        )


class MovementFilters(BaseModel):
    """Фильтры списка и экспорта движений."""
    status: Optional[MovementStatus] = None
    movement_type: Optional[MovementType] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class MovementPage(BaseModel):
    """Страница движений (ответ списка)."""
    movements: List[MovementRead]
    pagination: PaginationInfo


class UnmappedSkuRead(BaseModel):
    id: int
    tenant_id: int
    store_id: int
    sku: str
    product_name: Optional[str] = None
    last_seen_at: datetime
    occurrences: int
    resolved: bool
    created_at: datetime

    @classmethod
    def from_model(cls, record: UnmappedSku) -> "UnmappedSkuRead":
        return cls(
            id=record.id,
            tenant_id=record.tenant_id,
            store_id=record.store_id,
            sku=record.sku,
            product_name=record.product_name,
            last_seen_at=record.last_seen_at,
            occurrences=record.occurrences,
            resolved=record.resolved,
            created_at=record.created_at,
        )


class UnmappedSkuList(BaseModel):
    unmapped_skus: List[UnmappedSkuRead]


class SyncStats(BaseModel):
    """Скользящая статистика очереди магазина."""
    pending: int
    processing: int
    completed_24h: int
    failed_24h: int
    success_rate: float


class QueueHealth(BaseModel):
    """Состояние очереди по всем магазинам (для мониторинга)."""
    pending_operations: int
    processing_operations: int
    failed_operations: int
    stale_operations: int
    health_status: str
    last_updated: str
    error: Optional[str] = None


class ProcessingResult(BaseModel):
    """Результат цикла обработки очереди."""
    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    unmapped: int = 0
    errors: int = 0
    details: List[Dict[str, Any]] = Field(default_factory=list)

    def merge(self, other: "ProcessingResult") -> "ProcessingResult":
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.retried += other.retried
        self.failed += other.failed
        self.unmapped += other.unmapped
        self.errors += other.errors
        self.details.extend(other.details)
        return self


class OrderLineItem(BaseModel):
    sku: Optional[str] = None
    quantity: int
    product_name: Optional[str] = None


class OrderEvent(BaseModel):
    """Событие заказа от магазина (вебхук), из которого строятся движения."""
    tenant_id: int
    store_id: int
    integration_id: int
    order_id: str
    event_type: str
    line_items: List[OrderLineItem]
    metadata: Optional[Dict[str, Any]] = None


class OrderEventIn(BaseModel):
    """Тело запроса приема события; store_id берется из пути."""
    tenant_id: int
    integration_id: int
    order_id: str
    event_type: str
    line_items: List[OrderLineItem]
    metadata: Optional[Dict[str, Any]] = None


class IntakeResult(BaseModel):
    queued: int = 0
    skipped_duplicates: int = 0
    skipped_without_sku: int = 0
    movement_ids: List[int] = Field(default_factory=list)
