"""
 * @file: unmapped_sku.py
 * @description: SKU, которые интеграция не смогла сопоставить с товаром каталога
 * @dependencies: SQLModel, datetime
"""
from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint

from stock_push.utils.date_utils import utcnow


class UnmappedSku(SQLModel, table=True):
    __tablename__ = "unmapped_skus"
    __table_args__ = (
        UniqueConstraint("store_id", "sku", name="uq_unmapped_skus_store_sku"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(index=True, description="ID арендатора")
    store_id: int = Field(index=True, description="ID магазина")
    sku: str = Field(max_length=255, description="SKU товара")
    product_name: Optional[str] = Field(default=None, max_length=500, description="Название товара из события")
    last_seen_at: datetime = Field(default_factory=utcnow, description="Когда SKU встретился последний раз")
    occurrences: int = Field(default=1, description="Сколько раз интеграция отклонила SKU")
    resolved: bool = Field(default=False, index=True, description="Оператор исправил привязку")
    created_at: datetime = Field(default_factory=utcnow, description="Время создания записи")
