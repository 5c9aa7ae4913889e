import os

# До импорта stock_push: глобальный engine не должен ходить в PostgreSQL
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")

from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import stock_push.models  # noqa: F401
from stock_push.core.push_config import PushSyncConfig
from stock_push.models.movement import InventoryMovement
from stock_push.services.movement_store import MovementStore


class FakeClock:
    """Управляемые часы для сервисов, принимающих clock."""

    def __init__(self, start: datetime = datetime(2025, 3, 20, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return PushSyncConfig(
        retry_max_attempts=3,
        retry_initial_delay=120,
        retry_max_delay=3600,
        retry_exponential_base=2.0,
        retry_jitter=0.2,
        claim_lease_seconds=300,
        processing_batch_size=50,
        adapter_timeout_seconds=5,
        stats_window_hours=24,
        monitoring_max_pending_operations=1000,
        monitoring_stale_operation_hours=6,
        integrations={},
        adapter_default_url=None,
    )


@pytest.fixture
def store(session, config, clock):
    return MovementStore(session, config=config, clock=clock)


@pytest.fixture
def make_movement():
    def _make(**overrides) -> InventoryMovement:
        data = dict(
            tenant_id=1,
            store_id=10,
            integration_id=7,
            movement_type="egreso",
            sku="SKU-1",
            quantity=2,
            order_id="1001",
            event_type="orders/paid",
            movement_metadata={"productName": "Кружка"},
            max_attempts=3,
        )
        data.update(overrides)
        return InventoryMovement(**data)
    return _make
