"""
 * @file: sku_in_flight_lock.py
 * @description: Маркер "в обработке" для пары (магазин, SKU)
 * @dependencies: SQLModel, datetime
"""
from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from stock_push.utils.date_utils import utcnow


class SkuInFlightLock(SQLModel, table=True):
    """
    Пока строка существует и не истекла, ни один воркер не может захватить
    другое движение того же SKU в том же магазине.
    """
    __tablename__ = "sku_in_flight_locks"

    store_id: int = Field(primary_key=True, description="ID магазина")
    sku: str = Field(primary_key=True, max_length=255, description="SKU товара")
    movement_id: int = Field(description="Движение, которое сейчас обрабатывается")
    lock_owner: str = Field(max_length=100, description="Идентификатор воркера")
    locked_at: datetime = Field(default_factory=utcnow, description="Время установки блокировки")
    expires_at: datetime = Field(description="После этого момента блокировку можно перехватить")

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at > (now or utcnow())
