"""
Диспетчер очереди: захват готовых движений, вызов адаптера интеграции,
переход статуса по результату.

Ошибки адаптера никогда не выходят из цикла: они классифицируются в PushOutcome.
"""

import logging
import os
import socket
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import Callable, Dict, Any, Optional

from sqlmodel import Session

from stock_push.core.push_config import PushSyncConfig, push_sync_config
from stock_push.exceptions import InvalidTransitionError, RetriesExhausted
from stock_push.models.movement import InventoryMovement
from stock_push.schemas.inventory_push import ProcessingResult
from stock_push.services.adapters import AdapterRegistry, PushOutcome, PushResult, classify_exception
from stock_push.services.backoff import BackoffPolicy
from stock_push.services.movement_store import MovementStore
from stock_push.services.unmapped_sku_registry import UnmappedSkuRegistry
from stock_push.utils.date_utils import utcnow
from stock_push.utils.logging_config import log_business_event, log_error_with_context

logger = logging.getLogger("stock.push.dispatcher")


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class MovementDispatcher:
    """
    Один воркер очереди.

    Несколько диспетчеров (в разных процессах Celery) могут работать
    одновременно: синхронизация только через claim_due в MovementStore.
    """

    def __init__(
        self,
        session: Session,
        adapters: AdapterRegistry,
        config: PushSyncConfig = push_sync_config,
        clock: Callable[[], datetime] = utcnow,
        backoff: Optional[BackoffPolicy] = None,
        worker_id: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.session = session
        self.adapters = adapters
        self.config = config
        self.clock = clock
        self.store = MovementStore(session, config=config, clock=clock)
        self.unmapped = UnmappedSkuRegistry(session, clock=clock)
        self.backoff = backoff or BackoffPolicy.from_config(config)
        self.worker_id = worker_id or default_worker_id()
        self.timeout = timeout if timeout is not None else config.adapter_timeout_seconds

    def dispatch_pending(self, limit: Optional[int] = None) -> ProcessingResult:
        """
        Цикл обработки по всем магазинам, у которых есть готовые движения.

        Args:
            limit: Размер пачки на магазин

        Returns:
            ProcessingResult со сводкой по всем магазинам
        """
        result = ProcessingResult()

        for store_id in self.store.stores_with_due_movements():
            try:
                result.merge(self.run_cycle(store_id, limit=limit))
            except Exception as e:
                # Ошибка одного магазина не должна останавливать остальные
                self.session.rollback()
                log_error_with_context(e, "Dispatch cycle failed", store_id=store_id, worker_id=self.worker_id)

        if result.processed:
            log_business_event(
                "push_cycle_finished",
                f"Processed {result.processed} movements",
                succeeded=result.succeeded,
                retried=result.retried,
                failed=result.failed,
                unmapped=result.unmapped,
                errors=result.errors,
                worker_id=self.worker_id
            )
        return result

    def run_cycle(self, store_id: int, limit: Optional[int] = None) -> ProcessingResult:
        """Захватывает пачку движений магазина и отправляет каждое."""
        result = ProcessingResult()

        claimed = self.store.claim_due(store_id, limit=limit, worker_id=self.worker_id)
        if not claimed:
            return result

        logger.info(f"Store {store_id}: claimed {len(claimed)} movements (worker {self.worker_id})")

        for movement in claimed:
            movement_id = movement.id
            try:
                detail = self._process(movement, result)
            except InvalidTransitionError as e:
                # Аренда истекла или перехвачена другим воркером: движение уже не наше
                self.session.rollback()
                logger.warning(f"Movement {movement_id}: claim lost, skipped ({e})")
                detail = {"movement_id": movement_id, "outcome": "claim_lost", "reason": str(e)}
            except Exception as e:
                # Ошибка одного движения не останавливает пачку; движение вернется после истечения аренды
                self.session.rollback()
                log_error_with_context(e, "Movement dispatch failed", movement_id=movement_id, store_id=store_id)
                result.errors += 1
                detail = {"movement_id": movement_id, "outcome": "error", "reason": str(e)}

            result.details.append(detail)

        return result

    def _process(self, movement: InventoryMovement, result: ProcessingResult) -> Dict[str, Any]:
        """Одна попытка: продление аренды, вызов адаптера, переход статуса."""
        movement = self.store.start_attempt(movement.id, self.worker_id)
        result.processed += 1

        started = time.monotonic()
        push_result = self._push(movement)
        execution_time_ms = int((time.monotonic() - started) * 1000)

        return self._apply(movement, push_result, execution_time_ms, result)

    def _push(self, movement: InventoryMovement) -> PushResult:
        adapter = self.adapters.get(movement.integration_id)
        if adapter is None:
            return PushResult.permanent(f"No adapter configured for integration {movement.integration_id}")

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="push-adapter")
        future = executor.submit(adapter.push, movement, timeout=self.timeout)
        try:
            outcome = future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            return PushResult.transient(f"Adapter timeout after {self.timeout}s")
        except Exception as e:
            return classify_exception(e)
        finally:
            # Адаптер сам ограничен тем же timeout, поток не ждем
            executor.shutdown(wait=False)

        if not isinstance(outcome, PushResult):
            return PushResult.transient(f"Unexpected adapter result: {outcome!r}")
        return outcome

    def _apply(
        self,
        movement: InventoryMovement,
        push_result: PushResult,
        execution_time_ms: int,
        result: ProcessingResult
    ) -> Dict[str, Any]:
        detail = {
            "movement_id": movement.id,
            "sku": movement.sku,
            "attempts": movement.attempts,
            "outcome": push_result.outcome.value,
            "reason": push_result.reason,
            "execution_time_ms": execution_time_ms
        }

        if push_result.outcome == PushOutcome.SUCCESS:
            self.store.complete(movement.id, claim_owner=self.worker_id, execution_time_ms=execution_time_ms)
            result.succeeded += 1
            return detail

        if push_result.outcome == PushOutcome.UNMAPPED_SKU:
            self.store.fail_unmapped(movement.id, self.unmapped, claim_owner=self.worker_id)
            result.unmapped += 1
            return detail

        if push_result.outcome == PushOutcome.PERMANENT:
            self.store.fail(movement.id, push_result.reason or "rejected", claim_owner=self.worker_id)
            result.failed += 1
            return detail

        reason = push_result.reason or "transient error"
        try:
            delay = self.backoff.next_delay(movement.attempts, movement.max_attempts)
        except RetriesExhausted:
            self.store.fail(movement.id, reason, claim_owner=self.worker_id)
            result.failed += 1
            detail["exhausted"] = True
            return detail

        next_attempt_at = self.clock() + delay
        self.store.schedule_retry(movement.id, next_attempt_at, reason, claim_owner=self.worker_id)
        result.retried += 1
        detail["next_attempt_at"] = next_attempt_at.isoformat()
        return detail
