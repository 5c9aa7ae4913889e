from stock_push.services.adapters.base import (
    IntegrationAdapter,
    PushOutcome,
    PushResult,
    classify_exception,
)
from stock_push.services.adapters.http_adapter import HttpIntegrationAdapter
from stock_push.services.adapters.registry import AdapterRegistry

__all__ = [
    "IntegrationAdapter",
    "PushOutcome",
    "PushResult",
    "classify_exception",
    "HttpIntegrationAdapter",
    "AdapterRegistry",
]
