"""
API endpoints реестра несопоставленных SKU.
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from stock_push.api.deps import get_unmapped_registry
from stock_push.exceptions import NotFoundError
from stock_push.schemas.inventory_push import UnmappedSkuList, UnmappedSkuRead
from stock_push.services.export_service import XLSX_MEDIA_TYPE, export_unmapped_skus
from stock_push.services.unmapped_sku_registry import UnmappedSkuRegistry
from stock_push.utils.date_utils import utcnow

router = APIRouter()


@router.get("/{store_id}/unmapped-skus", response_model=UnmappedSkuList, summary="SKU без привязки")
async def list_unmapped_skus(
    store_id: int,
    resolved: Optional[bool] = Query(None, description="Фильтр по флагу resolved"),
    registry: UnmappedSkuRegistry = Depends(get_unmapped_registry)
):
    records = registry.list_unmapped(store_id, resolved=resolved)
    return UnmappedSkuList(unmapped_skus=[UnmappedSkuRead.from_model(r) for r in records])


@router.get("/{store_id}/unmapped-skus/export", summary="Выгрузка SKU без привязки в Excel")
async def export_unmapped_skus_xlsx(
    store_id: int,
    resolved: Optional[bool] = Query(None, description="Фильтр по флагу resolved"),
    registry: UnmappedSkuRegistry = Depends(get_unmapped_registry)
):
    output = export_unmapped_skus(registry.iter_unmapped(store_id, resolved=resolved))
    filename = quote(f"unmapped_skus_{store_id}_{utcnow().strftime('%Y-%m-%d')}.xlsx")
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.patch("/{store_id}/unmapped-skus/{unmapped_id}/resolve", response_model=UnmappedSkuRead, summary="Отметить SKU как исправленный")
async def resolve_unmapped_sku(
    store_id: int,
    unmapped_id: int,
    registry: UnmappedSkuRegistry = Depends(get_unmapped_registry)
):
    """Упавшие движения этого SKU в очередь не возвращаются: только ручной повтор."""
    try:
        return UnmappedSkuRead.from_model(registry.resolve(unmapped_id, store_id=store_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
