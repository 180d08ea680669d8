"""
缓存管理路由
GET  /api/cache/stats     - 缓存统计
POST /api/cache/clear     - 清理缓存条目
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional

from market_data_service.layers.cache import make_key
from market_data_service.models.response import ApiResponse
from market_data_service.services.market_service import MarketDataService, get_market_service

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class ClearRequest(BaseModel):
    namespace: str
    key_parts: Optional[list] = None


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(svc: MarketDataService = Depends(get_market_service)):
    """获取当前缓存后端统计信息"""
    return ApiResponse.ok(data=await svc.cache.stats())


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(
    body: ClearRequest,
    svc: MarketDataService = Depends(get_market_service),
):
    """清理指定缓存条目，如 {"namespace": "price", "key_parts": ["BTC"]}"""
    parts = [str(p) for p in body.key_parts or []]
    key = make_key(body.namespace, *parts)
    await svc.cache.remove(key)
    return ApiResponse.ok(message=f"缓存已清理: {key}")
