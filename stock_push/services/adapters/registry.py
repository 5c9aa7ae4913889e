import logging
from typing import Dict, Optional

from stock_push.core.push_config import PushSyncConfig, push_sync_config
from stock_push.services.adapters.base import IntegrationAdapter
from stock_push.services.adapters.http_adapter import HttpIntegrationAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Адаптеры по integration_id."""

    def __init__(self, adapters: Optional[Dict[int, IntegrationAdapter]] = None, default: Optional[IntegrationAdapter] = None):
        self._adapters: Dict[int, IntegrationAdapter] = dict(adapters or {})
        self.default = default

    def register(self, integration_id: int, adapter: IntegrationAdapter) -> None:
        self._adapters[integration_id] = adapter

    def get(self, integration_id: int) -> Optional[IntegrationAdapter]:
        return self._adapters.get(integration_id, self.default)

    @classmethod
    def from_config(cls, config: PushSyncConfig = push_sync_config) -> "AdapterRegistry":
        """
        Строит HTTP-адаптеры из STOCK_PUSH_INTEGRATIONS ({"<integration_id>": "<base_url>"}).
        STOCK_PUSH_ADAPTER_DEFAULT_URL используется для остальных интеграций.
        """
        registry = cls()
        for integration_id, base_url in config.integrations.items():
            try:
                key = int(integration_id)
            except ValueError:
                logger.error(f"Invalid integration id in config: {integration_id!r}, skipped")
                continue
            registry.register(key, HttpIntegrationAdapter(
                base_url,
                api_token=config.adapter_api_token,
                timeout=config.adapter_timeout_seconds
            ))

        if config.adapter_default_url:
            registry.default = HttpIntegrationAdapter(
                config.adapter_default_url,
                api_token=config.adapter_api_token,
                timeout=config.adapter_timeout_seconds
            )
        return registry
