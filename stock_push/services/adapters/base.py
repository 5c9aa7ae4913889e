"""
 * @file: base.py
 * @description: Контракт адаптера интеграции и классификация результата отправки
 * @dependencies: stock_push.exceptions, stock_push.models.movement
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from stock_push.exceptions import (
    AdapterPermanentError,
    AdapterTransientError,
    AdapterUnmappedSkuError,
)
from stock_push.models.movement import InventoryMovement


class PushOutcome(str, Enum):
    """Закрытый набор исходов отправки движения."""
    SUCCESS = "success"
    TRANSIENT = "transient"
    UNMAPPED_SKU = "unmapped_sku"
    PERMANENT = "permanent"


@dataclass
class PushResult:
    outcome: PushOutcome
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "PushResult":
        return cls(PushOutcome.SUCCESS)

    @classmethod
    def transient(cls, reason: str) -> "PushResult":
        return cls(PushOutcome.TRANSIENT, reason)

    @classmethod
    def unmapped_sku(cls, reason: str = "unmapped_sku") -> "PushResult":
        return cls(PushOutcome.UNMAPPED_SKU, reason)

    @classmethod
    def permanent(cls, reason: str) -> "PushResult":
        return cls(PushOutcome.PERMANENT, reason)


class IntegrationAdapter(ABC):
    """
    Отправка одного движения во внешнюю платформу.

    Вызов должен быть идемпотентным по id движения: при падении воркера
    после успешной отправки движение будет отправлено повторно.
    Адаптер может вернуть PushResult или выбросить AdapterError.

    timeout (секунды) обязателен к соблюдению: по его истечении диспетчер
    считает попытку проваленной и отпускает маркер SKU, поэтому вызов,
    продолжающийся после этого, может обогнать следующее движение того же SKU.
    """

    @abstractmethod
    def push(self, movement: InventoryMovement, timeout: Optional[float] = None) -> PushResult:
        raise NotImplementedError


def classify_exception(error: BaseException) -> PushResult:
    """Ошибка адаптера -> исход. Неизвестные ошибки считаются временными."""
    if isinstance(error, AdapterUnmappedSkuError):
        return PushResult.unmapped_sku(error.reason or "unmapped_sku")
    if isinstance(error, AdapterPermanentError):
        return PushResult.permanent(error.reason)
    if isinstance(error, AdapterTransientError):
        return PushResult.transient(error.reason)
    return PushResult.transient(f"{type(error).__name__}: {error}")
