from datetime import datetime
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import JSON, Column
from enum import Enum

from stock_push.utils.date_utils import utcnow


class LogAction(str, Enum):
    """Стандартизированные действия журнала движений."""
    CREATED = "created"
    CLAIMED = "claimed"
    ATTEMPT_STARTED = "attempt_started"
    LEASE_EXPIRED = "lease_expired"
    COMPLETED = "completed"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"
    UNMAPPED_SKU = "unmapped_sku"
    MANUAL_RETRY = "manual_retry"


class MovementLog(SQLModel, table=True):
    """
    Лог всех действий над движениями для аудита и отладки.
    """
    __tablename__ = "inventory_movement_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    movement_id: int = Field(foreign_key="inventory_movements_queue.id", index=True, description="ID движения")
    action: str = Field(index=True, description="Действие (created, claimed, completed, failed, ...)")
    status: str = Field(description="Уровень (info, warning, error)")
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON), description="Детали действия")
    timestamp: datetime = Field(default_factory=utcnow, index=True, description="Время события")
    execution_time_ms: Optional[int] = Field(default=None, description="Время выполнения в миллисекундах")

    def __str__(self) -> str:
        return f"Log({self.action}) for movement {self.movement_id} at {self.timestamp}"
