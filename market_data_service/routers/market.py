"""
行情数据路由
GET /api/market/price/{symbol}    - 实时价格
GET /api/market/search?query=     - 代码搜索（加密货币 + 股票）
GET /api/market/trending          - 热门资产
GET /api/market/health            - 行情接口健康检查
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status

from market_data_service.models.response import ApiResponse
from market_data_service.services.market_service import MarketDataService, get_market_service

router = APIRouter(prefix="/api/market", tags=["行情数据"])

_MIN_QUERY_LENGTH = 2


@router.get("/price/{symbol}", response_model=ApiResponse)
async def get_price(
    symbol: str,
    svc: MarketDataService = Depends(get_market_service),
):
    """获取资产实时价格（5 分钟缓存）"""
    quote = await svc.get_price(symbol)
    if quote is None:
        return ApiResponse.fail(
            error="not_found",
            message=f"暂无 '{symbol}' 的价格数据",
        ).to_response(status.HTTP_404_NOT_FOUND)
    return ApiResponse.ok(data=quote.model_dump(mode="json"))


@router.get("/search", response_model=ApiResponse)
async def search_symbols(
    query: str = Query(default="", description="代码或名称关键词，至少 2 个字符"),
    svc: MarketDataService = Depends(get_market_service),
):
    """根据关键词搜索加密货币与股票"""
    if len(query.strip()) < _MIN_QUERY_LENGTH:
        return ApiResponse.fail(
            error="invalid_query",
            message=f"关键词至少需要 {_MIN_QUERY_LENGTH} 个字符",
        ).to_response(status.HTTP_400_BAD_REQUEST)
    results = await svc.search(query)
    return ApiResponse.ok(
        data={
            "query": query,
            "count": len(results),
            "results": [r.model_dump(mode="json") for r in results],
        },
    )


@router.get("/trending", response_model=ApiResponse)
async def get_trending(svc: MarketDataService = Depends(get_market_service)):
    """获取热门资产（30 分钟缓存），上游不可用时返回空列表"""
    trending = await svc.get_trending()
    return ApiResponse.ok(
        data={
            "count": len(trending),
            "assets": [t.model_dump(mode="json") for t in trending],
        },
    )


@router.get("/health")
async def market_health():
    return {
        "status": "Healthy",
        "service": "Market Data API",
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
    }
