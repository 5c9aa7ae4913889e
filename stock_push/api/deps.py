from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from sqlmodel import Session

from stock_push.database import get_db
from stock_push.models.movement import MovementStatus, MovementType
from stock_push.schemas.inventory_push import MovementFilters
from stock_push.services.manual_retry import ManualRetryService
from stock_push.services.movement_intake import MovementIntakeService
from stock_push.services.movement_store import MovementStore
from stock_push.services.stats_service import PushStatsService
from stock_push.services.unmapped_sku_registry import UnmappedSkuRegistry
from stock_push.utils.date_utils import parse_date


def get_movement_store(session: Session = Depends(get_db)) -> MovementStore:
    return MovementStore(session)


def get_intake_service(session: Session = Depends(get_db)) -> MovementIntakeService:
    return MovementIntakeService(session)


def get_manual_retry_service(session: Session = Depends(get_db)) -> ManualRetryService:
    return ManualRetryService(session)


def get_stats_service(session: Session = Depends(get_db)) -> PushStatsService:
    return PushStatsService(session)


def get_unmapped_registry(session: Session = Depends(get_db)) -> UnmappedSkuRegistry:
    return UnmappedSkuRegistry(session)


def get_movement_filters(
    status_filter: Optional[MovementStatus] = Query(None, alias="status", description="Статус движения"),
    movement_type: Optional[MovementType] = Query(None, alias="type", description="ingreso / egreso"),
    date_from: Optional[str] = Query(None, description="Начальная дата (YYYY-MM-DD или ISO)"),
    date_to: Optional[str] = Query(None, description="Конечная дата (YYYY-MM-DD или ISO)"),
) -> MovementFilters:
    """Общие фильтры списка и экспорта движений."""
    try:
        return MovementFilters(
            status=status_filter,
            movement_type=movement_type,
            date_from=parse_date(date_from) if date_from else None,
            date_to=parse_date(date_to, end_of_day=True) if date_to else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
