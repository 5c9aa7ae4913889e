import logging
from typing import Any, Dict, Optional

import requests

from stock_push.exceptions import (
    AdapterPermanentError,
    AdapterTransientError,
    AdapterUnmappedSkuError,
)
from stock_push.models.movement import InventoryMovement
from stock_push.services.adapters.base import IntegrationAdapter, PushResult

logger = logging.getLogger(__name__)

UNMAPPED_ERROR_CODES = ("sku_not_found", "unmapped_sku")


class HttpIntegrationAdapter(IntegrationAdapter):
    """
    Базовый HTTP-транспорт: POST {base_url}/movements.

    Заголовок Idempotency-Key строится из id движения, поэтому повторная
    отправка после перехвата аренды не создает дубль на стороне платформы.
    """

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.http = session or requests.Session()

    def _get_headers(self, movement: InventoryMovement) -> Dict[str, str]:
        """Формирует заголовки для запроса к платформе."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Idempotency-Key": f"movement-{movement.id}",
        }
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _build_payload(self, movement: InventoryMovement) -> Dict[str, Any]:
        return {
            "movement_id": movement.id,
            "type": movement.movement_type.value,
            "sku": movement.sku,
            "quantity": movement.quantity,
            "order_id": movement.order_id,
            "description": f"Orden {movement.order_id} - {movement.event_type}",
        }

    @staticmethod
    def _error_code(response: requests.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("code") or body.get("error")
        return None

    def push(self, movement: InventoryMovement, timeout: Optional[float] = None) -> PushResult:
        """
        Отправляет движение. Запрос ограничен меньшим из timeout и self.timeout.

        Raises:
            AdapterTransientError: Сеть, таймаут, 429, 5xx
            AdapterUnmappedSkuError: 404 или код sku_not_found / unmapped_sku
            AdapterPermanentError: Прочие 4xx
        """
        url = f"{self.base_url}/movements"
        try:
            response = self.http.post(
                url,
                json=self._build_payload(movement),
                headers=self._get_headers(movement),
                timeout=min(timeout, self.timeout) if timeout else self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise AdapterTransientError(f"{type(e).__name__}: {e}")
        except requests.RequestException as e:
            raise AdapterTransientError(f"Request failed: {e}")

        status = response.status_code
        # 409: движение с этим ключом идемпотентности уже принято
        if 200 <= status < 300 or status == 409:
            logger.debug(f"Movement {movement.id} accepted by {url} ({status})")
            return PushResult.success()

        code = self._error_code(response)
        detail = f"HTTP {status}" + (f" ({code})" if code else "")

        if status == 404 or code in UNMAPPED_ERROR_CODES:
            raise AdapterUnmappedSkuError("unmapped_sku")
        if status == 429 or status >= 500:
            raise AdapterTransientError(detail)
        if 400 <= status < 500:
            raise AdapterPermanentError(f"{detail}: {response.text[:500]}")

        raise AdapterTransientError(f"Unexpected response {detail}")
