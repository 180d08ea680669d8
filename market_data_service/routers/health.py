"""健康检查路由"""

import time

from fastapi import APIRouter, Depends

from market_data_service import __version__
from market_data_service.db import check_health
from market_data_service.services.market_service import MarketDataService, get_market_service

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(svc: MarketDataService = Depends(get_market_service)):
    """服务健康检查"""
    db_health = await check_health()
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Market Data Service",
            "databases": db_health,
            "cache": await svc.cache.stats(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
