import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlmodel import select

from stock_push.exceptions import (
    AdapterPermanentError,
    AdapterTransientError,
    AdapterUnmappedSkuError,
    InvalidTransitionError,
)
from stock_push.models.movement import MovementStatus
from stock_push.models.unmapped_sku import UnmappedSku
from stock_push.services.adapters import AdapterRegistry, IntegrationAdapter, PushResult
from stock_push.services.backoff import BackoffPolicy
from stock_push.services.dispatcher import MovementDispatcher
from stock_push.services.manual_retry import ManualRetryService


class ScriptedAdapter(IntegrationAdapter):
    """Возвращает (или выбрасывает) заранее заданные исходы по очереди; последний повторяется."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [PushResult.success()]
        self.calls = []
        self.timeouts = []

    def push(self, movement, timeout=None):
        self.calls.append(movement.id)
        self.timeouts.append(timeout)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class BlockingAdapter(IntegrationAdapter):
    def __init__(self):
        self.release = threading.Event()

    def push(self, movement, timeout=None):
        self.release.wait(5)
        return PushResult.success()


@pytest.fixture
def make_dispatcher(session, config, clock):
    def _make(adapter=None, **kwargs):
        registry = AdapterRegistry({7: adapter}) if adapter is not None else AdapterRegistry()
        kwargs.setdefault("backoff", BackoffPolicy.from_config(config))
        kwargs.setdefault("worker_id", "worker-1")
        return MovementDispatcher(
            session,
            registry,
            config=config,
            clock=clock,
            **kwargs
        )
    return _make


class TestDispatchScenarios:
    """Сквозные сценарии диспетчера"""

    def test_transient_failures_exhaust_attempts(self, make_dispatcher, make_movement, clock):
        """Тест: три временные ошибки подряд -> failed, attempts=3"""
        adapter = ScriptedAdapter(PushResult.transient("HTTP 503"))
        dispatcher = make_dispatcher(adapter)
        movement = dispatcher.store.append(make_movement(max_attempts=3))

        for _ in range(3):
            dispatcher.run_cycle(10)
            clock.advance(hours=2)

        final = dispatcher.store.get(movement.id)
        assert final.status == MovementStatus.FAILED
        assert final.attempts == 3
        assert final.next_attempt_at is None
        assert final.error_message == "HTTP 503"
        assert len(adapter.calls) == 3

        # Больше не захватывается
        assert dispatcher.run_cycle(10).processed == 0

    def test_transient_failure_schedules_backoff(self, make_dispatcher, make_movement, clock):
        """Тест: после временной ошибки next_attempt_at = now + задержка с jitter"""
        dispatcher = make_dispatcher(ScriptedAdapter(AdapterTransientError("HTTP 502")))
        movement = dispatcher.store.append(make_movement())
        now = clock.now

        result = dispatcher.run_cycle(10)

        retried = dispatcher.store.get(movement.id)
        assert result.retried == 1
        assert retried.status == MovementStatus.PENDING
        assert retried.attempts == 1
        assert now + timedelta(seconds=96) <= retried.next_attempt_at <= now + timedelta(seconds=144)

    def test_unmapped_sku_fails_immediately(self, make_dispatcher, make_movement, session):
        """Тест: несопоставленный SKU -> failed с первой попытки и запись в реестре"""
        dispatcher = make_dispatcher(ScriptedAdapter(PushResult.unmapped_sku()))
        movement = dispatcher.store.append(make_movement(sku="ABC"))

        result = dispatcher.run_cycle(10)

        final = dispatcher.store.get(movement.id)
        assert result.unmapped == 1
        assert final.status == MovementStatus.FAILED
        assert final.attempts == 1
        assert final.error_message == "unmapped_sku"

        record = session.exec(
            select(UnmappedSku).where(UnmappedSku.store_id == 10, UnmappedSku.sku == "ABC")
        ).one()
        assert record.occurrences == 1
        assert record.resolved is False
        assert record.product_name == "Кружка"

    def test_same_sku_processed_in_creation_order(self, make_dispatcher, make_movement, clock):
        """Тест: второе движение SKU захватывается только после завершения первого"""
        adapter = ScriptedAdapter(PushResult.success())
        dispatcher = make_dispatcher(adapter)
        first = dispatcher.store.append(make_movement(sku="ABC"))
        clock.advance(seconds=1)
        second = dispatcher.store.append(make_movement(sku="ABC"))

        dispatcher.run_cycle(10)
        assert adapter.calls == [first.id]
        assert dispatcher.store.get(first.id).status == MovementStatus.COMPLETED
        assert dispatcher.store.get(second.id).status == MovementStatus.PENDING

        dispatcher.run_cycle(10)
        assert adapter.calls == [first.id, second.id]
        assert dispatcher.store.get(second.id).status == MovementStatus.COMPLETED

    def test_same_sku_waits_while_earlier_is_backing_off(self, make_dispatcher, make_movement, clock):
        """Тест: пока раннее движение ждет повтора, позднее не отправляется"""
        adapter = ScriptedAdapter(PushResult.transient("HTTP 503"), PushResult.success())
        dispatcher = make_dispatcher(adapter)
        first = dispatcher.store.append(make_movement(sku="ABC"))
        clock.advance(seconds=1)
        second = dispatcher.store.append(make_movement(sku="ABC"))

        dispatcher.run_cycle(10)
        dispatcher.run_cycle(10)
        assert adapter.calls == [first.id]

        clock.advance(hours=1)
        dispatcher.run_cycle(10)
        dispatcher.run_cycle(10)
        assert adapter.calls == [first.id, first.id, second.id]

    def test_manual_retry_is_claimed_immediately(self, make_dispatcher, make_movement, session):
        """Тест: после ручного повтора движение захватывается в ближайшем цикле"""
        adapter = ScriptedAdapter(PushResult.permanent("HTTP 422"), PushResult.success())
        dispatcher = make_dispatcher(adapter)
        movement = dispatcher.store.append(make_movement())

        dispatcher.run_cycle(10)
        assert dispatcher.store.get(movement.id).status == MovementStatus.FAILED

        retried = ManualRetryService(session, store=dispatcher.store).retry(movement.id)
        assert retried.status == MovementStatus.PENDING
        assert retried.attempts == 0

        result = dispatcher.run_cycle(10)
        final = dispatcher.store.get(movement.id)
        assert result.succeeded == 1
        assert final.status == MovementStatus.COMPLETED
        assert final.attempts == 1


class TestOutcomeClassification:
    """Тесты классификации результата адаптера"""

    def test_success(self, make_dispatcher, make_movement):
        dispatcher = make_dispatcher(ScriptedAdapter(PushResult.success()))
        movement = dispatcher.store.append(make_movement())

        result = dispatcher.run_cycle(10)

        assert result.processed == 1 and result.succeeded == 1
        assert dispatcher.store.get(movement.id).status == MovementStatus.COMPLETED

    def test_permanent_exception(self, make_dispatcher, make_movement):
        """Тест: отказ платформы -> failed без повторов"""
        dispatcher = make_dispatcher(ScriptedAdapter(AdapterPermanentError("HTTP 422: invalid quantity")))
        movement = dispatcher.store.append(make_movement())

        result = dispatcher.run_cycle(10)

        final = dispatcher.store.get(movement.id)
        assert result.failed == 1
        assert final.status == MovementStatus.FAILED
        assert final.attempts == 1
        assert final.error_message == "HTTP 422: invalid quantity"

    def test_unmapped_exception(self, make_dispatcher, make_movement):
        dispatcher = make_dispatcher(ScriptedAdapter(AdapterUnmappedSkuError("sku_not_found")))
        dispatcher.store.append(make_movement())

        assert dispatcher.run_cycle(10).unmapped == 1

    def test_unknown_exception_is_transient(self, make_dispatcher, make_movement):
        """Тест: неизвестная ошибка адаптера считается временной и не выходит из цикла"""
        dispatcher = make_dispatcher(ScriptedAdapter(RuntimeError("boom")))
        movement = dispatcher.store.append(make_movement())

        result = dispatcher.run_cycle(10)

        retried = dispatcher.store.get(movement.id)
        assert result.retried == 1
        assert retried.status == MovementStatus.PENDING
        assert "boom" in retried.error_message

    def test_unexpected_return_value_is_transient(self, make_dispatcher, make_movement):
        dispatcher = make_dispatcher(ScriptedAdapter("ok"))
        dispatcher.store.append(make_movement())

        assert dispatcher.run_cycle(10).retried == 1

    def test_missing_adapter_is_permanent(self, make_dispatcher, make_movement):
        """Тест: интеграция без адаптера -> failed"""
        dispatcher = make_dispatcher(None)
        movement = dispatcher.store.append(make_movement())

        dispatcher.run_cycle(10)

        final = dispatcher.store.get(movement.id)
        assert final.status == MovementStatus.FAILED
        assert "No adapter" in final.error_message

    def test_adapter_timeout_is_transient(self, make_dispatcher, make_movement):
        """Тест: зависший адаптер обрывается по таймауту, движение откладывается"""
        adapter = BlockingAdapter()
        dispatcher = make_dispatcher(adapter, timeout=0.05)
        movement = dispatcher.store.append(make_movement())

        try:
            result = dispatcher.run_cycle(10)
        finally:
            adapter.release.set()

        retried = dispatcher.store.get(movement.id)
        assert result.retried == 1
        assert retried.status == MovementStatus.PENDING
        assert "timeout" in retried.error_message


class TestDispatchLoop:
    """Тесты цикла по магазинам"""

    def test_dispatch_pending_covers_all_stores(self, make_dispatcher, make_movement):
        adapter = ScriptedAdapter(PushResult.success())
        dispatcher = make_dispatcher(adapter)
        dispatcher.store.append(make_movement(store_id=10))
        dispatcher.store.append(make_movement(store_id=20))

        result = dispatcher.dispatch_pending()

        assert result.processed == 2
        assert result.succeeded == 2
        assert len(result.details) == 2

    def test_lost_claim_is_skipped(self, make_dispatcher, make_movement):
        """Тест: если аренда потеряна во время отправки, цикл продолжается"""
        dispatcher = make_dispatcher(ScriptedAdapter(PushResult.success()))
        movement = dispatcher.store.append(make_movement())

        with patch.object(
            dispatcher.store,
            "complete",
            side_effect=InvalidTransitionError(movement.id, "processing", "complete")
        ):
            result = dispatcher.run_cycle(10)

        assert result.processed == 1
        assert result.succeeded == 0
        assert result.details[0]["outcome"] == "claim_lost"

    def test_store_failure_does_not_stop_other_stores(self, make_dispatcher, make_movement):
        """Тест: ошибка цикла одного магазина логируется, остальные обрабатываются"""
        dispatcher = make_dispatcher(ScriptedAdapter(PushResult.success()))
        dispatcher.store.append(make_movement(store_id=10))
        dispatcher.store.append(make_movement(store_id=20))

        original = dispatcher.run_cycle

        def flaky(store_id, limit=None):
            if store_id == 10:
                raise RuntimeError("db down")
            return original(store_id, limit=limit)

        with patch.object(dispatcher, "run_cycle", side_effect=flaky):
            result = dispatcher.dispatch_pending()

        assert result.succeeded == 1

    def test_no_due_work(self, make_dispatcher):
        assert make_dispatcher(ScriptedAdapter()).dispatch_pending().processed == 0

    def test_adapter_receives_call_timeout(self, make_dispatcher, make_movement):
        adapter = ScriptedAdapter(PushResult.success())
        dispatcher = make_dispatcher(adapter, timeout=2)
        dispatcher.store.append(make_movement())

        dispatcher.run_cycle(10)

        assert adapter.timeouts == [2]


class ReentrantAdapter(IntegrationAdapter):
    """На первой отправке движения trigger_id выполняет action (работа второго воркера)."""

    def __init__(self, trigger_id, action):
        self.trigger_id = trigger_id
        self.action = action
        self.calls = []
        self.fired = False

    def push(self, movement, timeout=None):
        self.calls.append((movement.sku, movement.id))
        if movement.id == self.trigger_id and not self.fired:
            self.fired = True
            self.action()
        return PushResult.success()


class TestConcurrentWorkers:
    """Тесты двух воркеров на одном магазине"""

    def test_expired_claim_not_pushed_after_reclaim(self, make_dispatcher, make_movement, store, clock):
        """Тест: аренда истекла во время долгой отправки, второй воркер перехватил SKU,
        первый не отправляет устаревшее движение повторно"""
        workers = {}

        def second_worker():
            clock.advance(seconds=301)
            workers["w2"].run_cycle(10)
            workers["w2"].run_cycle(10)

        slow = store.append(make_movement(sku="A"))
        clock.advance(seconds=1)
        b1 = store.append(make_movement(sku="B"))
        clock.advance(seconds=1)
        b2 = store.append(make_movement(sku="B"))

        adapter = ReentrantAdapter(slow.id, second_worker)
        workers["w1"] = make_dispatcher(adapter, worker_id="w1")
        workers["w2"] = make_dispatcher(adapter, worker_id="w2")

        result = workers["w1"].run_cycle(10)

        b_pushes = [movement_id for sku, movement_id in adapter.calls if sku == "B"]
        assert b_pushes == [b1.id, b2.id]

        outcomes = {detail["movement_id"]: detail["outcome"] for detail in result.details}
        assert outcomes == {slow.id: "claim_lost", b1.id: "claim_lost"}
        assert result.processed == 1

        for movement in (slow, b1, b2):
            assert store.get(movement.id).status == MovementStatus.COMPLETED
        assert store.get(b1.id).attempts == 1


class TestMovementErrorIsolation:
    """Тесты изоляции ошибок отдельного движения"""

    def test_registry_failure_does_not_abort_batch(self, make_dispatcher, make_movement, session, clock):
        """Тест: ошибка реестра на первом движении откатывает его fail, второе движение отправляется"""
        adapter = ScriptedAdapter(PushResult.unmapped_sku(), PushResult.success())
        dispatcher = make_dispatcher(adapter)
        unmapped = dispatcher.store.append(make_movement(sku="A"))
        other = dispatcher.store.append(make_movement(sku="B"))

        with patch.object(dispatcher.unmapped, "record_unmapped", side_effect=RuntimeError("registry down")):
            result = dispatcher.run_cycle(10)

        assert adapter.calls == [unmapped.id, other.id]
        assert result.errors == 1
        assert result.succeeded == 1
        assert result.unmapped == 0
        outcomes = {detail["movement_id"]: detail["outcome"] for detail in result.details}
        assert outcomes[unmapped.id] == "error"

        stuck = dispatcher.store.get(unmapped.id)
        assert stuck.status == MovementStatus.PROCESSING
        assert stuck.attempts == 1
        assert dispatcher.store.get(other.id).status == MovementStatus.COMPLETED
        assert session.exec(select(UnmappedSku)).all() == []

        # После истечения аренды движение подхватывается заново
        clock.advance(seconds=301)
        dispatcher.run_cycle(10)
        assert dispatcher.store.get(unmapped.id).status == MovementStatus.COMPLETED

    def test_transition_error_does_not_abort_batch(self, make_dispatcher, make_movement):
        """Тест: неожиданная ошибка перехода одного движения не останавливает остальные"""
        adapter = ScriptedAdapter(PushResult.success())
        dispatcher = make_dispatcher(adapter)
        first = dispatcher.store.append(make_movement(sku="A"))
        second = dispatcher.store.append(make_movement(sku="B"))
        original = dispatcher.store.complete

        def flaky(movement_id, **kwargs):
            if movement_id == first.id:
                raise RuntimeError("deadlock detected")
            return original(movement_id, **kwargs)

        with patch.object(dispatcher.store, "complete", side_effect=flaky):
            result = dispatcher.run_cycle(10)

        assert result.errors == 1
        assert result.succeeded == 1
        assert dispatcher.store.get(second.id).status == MovementStatus.COMPLETED
        assert dispatcher.store.get(first.id).status == MovementStatus.PROCESSING
