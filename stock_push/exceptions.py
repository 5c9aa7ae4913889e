"""
Исключения системы отправки складских движений.

Команды (append / retry / resolve) пробрасывают ValidationError,
InvalidTransitionError и NotFoundError наверх, роутеры переводят их в HTTP-ответы.
Ошибки адаптеров перехватываются диспетчером и никогда не выходят из цикла обработки.
"""

from typing import Optional


class StockPushError(Exception):
    """Базовое исключение сервиса."""


class ValidationError(StockPushError):
    """Некорректное движение при создании: в очередь не попадает."""


class InvalidTransitionError(StockPushError):
    """Операция над движением в несовместимом статусе. Состояние не меняется."""

    def __init__(self, movement_id: Optional[int], current_status: Optional[str], action: str):
        self.movement_id = movement_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Movement {movement_id}: cannot {action} from status '{current_status}'"
        )


class NotFoundError(StockPushError):
    """Неизвестный id движения или SKU."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class RetriesExhausted(StockPushError):
    """Политика backoff: попытки исчерпаны, повтор не планируется."""

    def __init__(self, attempts: int, max_attempts: int):
        self.attempts = attempts
        self.max_attempts = max_attempts
        super().__init__(f"attempts {attempts} reached max_attempts {max_attempts}")


class AdapterError(StockPushError):
    """Базовая ошибка адаптера интеграции."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class AdapterTransientError(AdapterError):
    """Сеть, таймаут, 5xx: повторяется по политике backoff."""


class AdapterUnmappedSkuError(AdapterError):
    """Платформа не знает SKU: терминально, нужна ручная привязка."""


class AdapterPermanentError(AdapterError):
    """Отказ платформы по валидации/бизнес-правилам: терминально."""
