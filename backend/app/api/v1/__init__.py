from fastapi import APIRouter

from .routes_health import router as health_router
from .shops import router as shops_router
from .sync_jobs import router as sync_router


api_v1 = APIRouter()
api_v1.include_router(health_router)      # /health
api_v1.include_router(shops_router)       # /shops
api_v1.include_router(sync_router)        # /sync
