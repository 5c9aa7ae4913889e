from unittest.mock import patch

from stock_push.models.movement import MovementStatus
from stock_push.services import push_tasks
from stock_push.services.adapters import AdapterRegistry, IntegrationAdapter, PushResult


class AcceptAllAdapter(IntegrationAdapter):
    def push(self, movement, timeout=None):
        return PushResult.success()


class TestPushTasks:
    """Тесты Celery задач (eager apply)"""

    def test_process_pending_movements(self, session, store, make_movement):
        movement = store.append(make_movement())

        with patch.object(push_tasks, "SessionLocal", return_value=session), \
                patch.object(AdapterRegistry, "from_config", return_value=AdapterRegistry({7: AcceptAllAdapter()})):
            summary = push_tasks.process_pending_movements.apply(kwargs={"limit": 10}).get()

        assert summary["status"] == "success"
        assert summary["processed"] == 1
        assert summary["succeeded"] == 1
        assert store.get(movement.id).status == MovementStatus.COMPLETED

    def test_monitor_push_queue_health(self, session, store, make_movement):
        store.append(make_movement())

        with patch.object(push_tasks, "SessionLocal", return_value=session):
            summary = push_tasks.monitor_push_queue_health.apply().get()

        assert summary["status"] == "success"
        assert summary["health_data"]["pending_operations"] == 1
