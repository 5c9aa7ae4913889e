from typing import Any, Dict, Optional

from pydantic_settings import BaseSettings


class PushSyncConfig(BaseSettings):
    """
    Конфигурация системы отправки складских движений во внешние интеграции.

    Настройки можно переопределить через переменные окружения с префиксом STOCK_PUSH_
    """

    # Настройки retry механизма
    retry_max_attempts: int = 3
    retry_initial_delay: int = 120  # секунды
    retry_max_delay: int = 3600   # секунды (1 час)
    retry_exponential_base: float = 2.0
    retry_jitter: float = 0.2     # ±20% от задержки

    # Настройки обработки очереди
    claim_lease_seconds: int = 300
    processing_batch_size: int = 50
    adapter_timeout_seconds: int = 30
    worker_interval_seconds: int = 120

    # Настройки статистики и мониторинга
    stats_window_hours: int = 24
    monitoring_max_pending_operations: int = 1000
    monitoring_stale_operation_hours: int = 6

    # Интеграции: integration_id -> базовый URL адаптера
    integrations: Dict[str, str] = {}
    adapter_default_url: Optional[str] = None
    adapter_api_token: Optional[str] = None

    model_config = {
        "env_prefix": "STOCK_PUSH_",
        "env_file": ".env",
        "extra": "ignore"  # Игнорировать дополнительные поля из .env
    }


# Глобальный экземпляр конфигурации
push_sync_config = PushSyncConfig()


# Настройки для различных сред выполнения
ENVIRONMENT_CONFIGS = {
    "development": {
        "retry_max_attempts": 3,
        "retry_initial_delay": 30,
        "claim_lease_seconds": 120,
        "worker_interval_seconds": 30,
        "monitoring_max_pending_operations": 100,
    },
    "staging": {
        "retry_max_attempts": 3,
        "retry_initial_delay": 60,
        "claim_lease_seconds": 300,
        "worker_interval_seconds": 60,
        "monitoring_max_pending_operations": 500,
    },
    "production": {
        "retry_max_attempts": 3,
        "retry_initial_delay": 120,
        "claim_lease_seconds": 300,
        "worker_interval_seconds": 120,
        "monitoring_max_pending_operations": 1000,
    }
}


def get_environment_config(env: str = "production") -> Dict[str, Any]:
    """
    Получает конфигурацию для указанной среды выполнения.

    Args:
        env: Имя среды (development, staging, production)

    Returns:
        Dict с настройками для указанной среды
    """
    return ENVIRONMENT_CONFIGS.get(env, ENVIRONMENT_CONFIGS["production"])


def update_config_for_environment(env: str = "production", config: Optional[PushSyncConfig] = None) -> PushSyncConfig:
    """
    Обновляет конфигурацию для указанной среды.

    Args:
        env: Имя среды выполнения
        config: Экземпляр конфигурации (по умолчанию глобальный)
    """
    target = config or push_sync_config
    env_config = get_environment_config(env)

    for key, value in env_config.items():
        if hasattr(target, key):
            setattr(target, key, value)
    return target
