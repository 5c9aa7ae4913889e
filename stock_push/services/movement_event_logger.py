"""
Стандартизированный журнал действий над движениями.

Записи MovementLog добавляются в ту же сессию, что и изменение движения,
и фиксируются одним коммитом вместе с переходом статуса. Каждая запись
дублируется в стандартный logger "stock.push.events".
"""

import logging
from typing import Optional, Dict, Any
from sqlmodel import Session

from stock_push.models.movement import MovementStatus
from stock_push.models.movement_log import MovementLog, LogAction


LEVEL_BY_ACTION = {
    LogAction.FAILED: "warning",
    LogAction.UNMAPPED_SKU: "warning",
    LogAction.LEASE_EXPIRED: "warning",
    LogAction.RETRY_SCHEDULED: "info",
}


class MovementEventLogger:
    """
    Централизованная система логирования для очереди движений.
    """

    def __init__(self, session: Session):
        self.session = session
        self.logger = logging.getLogger("stock.push.events")

    def log_status_transition(
        self,
        movement_id: int,
        action: LogAction,
        from_status: MovementStatus,
        to_status: MovementStatus,
        reason: str,
        additional_context: Optional[Dict[str, Any]] = None
    ) -> MovementLog:
        """
        Логирование перехода между статусами движения.

        Args:
            movement_id: ID движения
            action: Действие, вызвавшее переход
            from_status: Исходный статус
            to_status: Целевой статус
            reason: Причина перехода
            additional_context: Дополнительный контекст
        """
        details = {
            "from_status": from_status.value,
            "to_status": to_status.value,
            "reason": reason,
            "transition": f"{from_status.value} -> {to_status.value}"
        }
        if additional_context:
            details.update(additional_context)

        return self._add(
            movement_id=movement_id,
            action=action,
            status=LEVEL_BY_ACTION.get(action, "info"),
            details=details,
            message=f"{from_status.value} -> {to_status.value} ({reason})"
        )

    def log_action(
        self,
        movement_id: int,
        action: LogAction,
        message: str,
        status: str = "info",
        execution_time_ms: Optional[int] = None,
        additional_context: Optional[Dict[str, Any]] = None
    ) -> MovementLog:
        """
        Логирование действия без смены статуса (создание, замер времени отправки).
        """
        details: Dict[str, Any] = {"message": message}
        if execution_time_ms is not None:
            details["execution_time_ms"] = execution_time_ms
        if additional_context:
            details.update(additional_context)

        return self._add(
            movement_id=movement_id,
            action=action,
            status=status,
            details=details,
            message=message,
            execution_time_ms=execution_time_ms
        )

    def _add(
        self,
        movement_id: int,
        action: LogAction,
        status: str,
        details: Dict[str, Any],
        message: str,
        execution_time_ms: Optional[int] = None
    ) -> MovementLog:
        entry = MovementLog(
            movement_id=movement_id,
            action=action.value,
            status=status,
            details=details,
            execution_time_ms=execution_time_ms
        )
        try:
            self.session.add(entry)
        except Exception as e:
            # Журнал не должен ломать переход статуса
            self.logger.error(f"Failed to record log entry for movement {movement_id}: {e}")

        timing_info = f" ({execution_time_ms}ms)" if execution_time_ms is not None else ""
        self.logger.log(
            getattr(logging, status.upper(), logging.INFO),
            f"Movement {movement_id} - {action.value}: {message}{timing_info}"
        )
        return entry
