"""
Все модели сервиса, чтобы SQLModel.metadata видела таблицы при create_all.
"""
from .movement import InventoryMovement, MovementStatus, MovementType, ACTIVE_STATUSES
from .unmapped_sku import UnmappedSku
from .sku_in_flight_lock import SkuInFlightLock
from .movement_log import MovementLog, LogAction

__all__ = [
    "InventoryMovement",
    "MovementStatus",
    "MovementType",
    "ACTIVE_STATUSES",
    "UnmappedSku",
    "SkuInFlightLock",
    "MovementLog",
    "LogAction",
]
