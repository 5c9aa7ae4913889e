"""
API endpoints очереди складских движений: список, создание, прием событий,
ручной повтор, статистика и выгрузка.
"""

import logging
import math
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlmodel import Session

from stock_push.api.deps import (
    get_intake_service,
    get_manual_retry_service,
    get_movement_filters,
    get_movement_store,
    get_stats_service,
)
from stock_push.core.push_config import push_sync_config
from stock_push.database import get_db
from stock_push.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from stock_push.models.movement import InventoryMovement
from stock_push.schemas.inventory_push import (
    IntakeResult,
    MovementCreate,
    MovementFilters,
    MovementPage,
    MovementRead,
    OrderEvent,
    OrderEventIn,
    PaginationInfo,
    ProcessingResult,
    SyncStats,
)
from stock_push.services.adapters import AdapterRegistry
from stock_push.services.dispatcher import MovementDispatcher
from stock_push.services.export_service import XLSX_MEDIA_TYPE, export_movements
from stock_push.services.manual_retry import ManualRetryService
from stock_push.services.movement_intake import MovementIntakeService
from stock_push.services.movement_store import MovementStore
from stock_push.services.stats_service import PushStatsService
from stock_push.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def get_adapter_registry() -> AdapterRegistry:
    return AdapterRegistry.from_config(push_sync_config)


@router.get("/{store_id}/inventory-push/movements", response_model=MovementPage, summary="Список движений")
async def list_movements(
    store_id: int,
    page: int = Query(1, ge=1, description="Номер страницы"),
    limit: int = Query(20, ge=1, le=200, description="Размер страницы"),
    filters: MovementFilters = Depends(get_movement_filters),
    store: MovementStore = Depends(get_movement_store)
):
    """
    Движения магазина, новые сначала.

    Returns:
        MovementPage: {movements, pagination}
    """
    movements, total = store.list_movements(store_id, filters=filters, page=page, limit=limit)
    return MovementPage(
        movements=[MovementRead.from_model(m) for m in movements],
        pagination=PaginationInfo(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0
        )
    )


@router.get("/{store_id}/inventory-push/movements/export", summary="Выгрузка движений в Excel")
async def export_movements_xlsx(
    store_id: int,
    filters: MovementFilters = Depends(get_movement_filters),
    store: MovementStore = Depends(get_movement_store)
):
    output = export_movements(store.iter_movements(store_id, filters=filters))
    filename = quote(f"movements_{store_id}_{utcnow().strftime('%Y-%m-%d')}.xlsx")
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get("/{store_id}/inventory-push/movements/{movement_id}", response_model=MovementRead, summary="Движение")
async def get_movement(
    store_id: int,
    movement_id: int,
    store: MovementStore = Depends(get_movement_store)
):
    try:
        return MovementRead.from_model(store.get(movement_id, store_id=store_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post(
    "/{store_id}/inventory-push/movements",
    response_model=MovementRead,
    status_code=status.HTTP_201_CREATED,
    summary="Добавить движение в очередь"
)
async def create_movement(
    store_id: int,
    payload: MovementCreate,
    store: MovementStore = Depends(get_movement_store)
):
    movement = InventoryMovement(
        tenant_id=payload.tenant_id,
        store_id=store_id,
        integration_id=payload.integration_id,
        movement_type=payload.movement_type,
        sku=payload.sku,
        quantity=payload.quantity,
        order_id=payload.order_id,
        event_type=payload.event_type,
        movement_metadata=payload.metadata,
        max_attempts=payload.max_attempts if payload.max_attempts is not None else push_sync_config.retry_max_attempts
    )
    try:
        return MovementRead.from_model(store.append(movement))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post("/{store_id}/inventory-push/events", response_model=IntakeResult, summary="Прием события заказа")
async def intake_order_event(
    store_id: int,
    payload: OrderEventIn,
    intake: MovementIntakeService = Depends(get_intake_service)
):
    """
    Событие заказа магазина (оплата, отмена, возврат) превращается в движения.
    Повторная доставка того же события движения не дублирует.
    """
    event = OrderEvent(store_id=store_id, **payload.model_dump())
    try:
        return intake.queue_movements_from_event(event)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post(
    "/{store_id}/inventory-push/movements/{movement_id}/retry",
    response_model=MovementRead,
    summary="Ручной повтор движения"
)
async def retry_movement(
    store_id: int,
    movement_id: int,
    retry_service: ManualRetryService = Depends(get_manual_retry_service)
):
    """Только для движений в статусе failed; счетчик попыток обнуляется."""
    try:
        return MovementRead.from_model(retry_service.retry(movement_id, store_id=store_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/{store_id}/inventory-push/stats", response_model=SyncStats, summary="Статистика очереди")
async def get_push_stats(
    store_id: int,
    stats_service: PushStatsService = Depends(get_stats_service)
):
    return stats_service.get_stats(store_id)


@router.post("/{store_id}/inventory-push/process", response_model=ProcessingResult, summary="Запуск обработки очереди")
async def process_store_queue(
    store_id: int,
    limit: int = Query(50, ge=1, le=200, description="Максимальное количество движений для обработки"),
    session: Session = Depends(get_db),
    adapters: AdapterRegistry = Depends(get_adapter_registry)
):
    """Внеочередной цикл диспетчера для одного магазина."""
    try:
        return MovementDispatcher(session, adapters).run_cycle(store_id, limit=limit)
    except Exception as e:
        logger.error(f"Ошибка обработки очереди магазина {store_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Ошибка обработки очереди: {str(e)}"
        )
