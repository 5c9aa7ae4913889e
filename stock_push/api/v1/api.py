from fastapi import APIRouter

from stock_push.api.v1.routers import inventory_push, unmapped_skus

# API маршруты
api_router = APIRouter()
api_router.include_router(inventory_push.router, prefix="/stores", tags=["Inventory Push"])
api_router.include_router(unmapped_skus.router, prefix="/stores", tags=["Unmapped SKUs"])
