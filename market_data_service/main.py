"""
行情数据服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn market_data_service.main:app --host 0.0.0.0 --port 5088
    python -m market_data_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from market_data_service import __version__
from market_data_service.config import settings
from market_data_service.db import (
    close_connections,
    get_redis,
    init_http_client,
    init_redis,
)
from market_data_service.layers.cache import build_cache_layer
from market_data_service.routers import cache, health, market
from market_data_service.services.market_service import build_market_service

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 Market Data Service v{__version__} 启动中")
    logger.info(f"   Redis     : {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    logger.info(f"   CoinGecko : {settings.COINGECKO_BASE_URL}")
    logger.info(f"   AlphaVant.: {'已配置' if settings.ALPHA_VANTAGE_API_KEY else '未配置（股票数据不可用）'}")
    logger.info("=" * 60)

    # Redis 失败不阻断启动，降级为进程内缓存
    redis_ok = await init_redis()
    cache_layer = build_cache_layer(get_redis() if redis_ok else None)
    app.state.market_service = build_market_service(cache_layer, init_http_client())
    logger.info("✅ 行情数据服务就绪")

    yield

    logger.info("🔄 行情数据服务正在关闭...")
    await close_connections()
    logger.info("✅ 行情数据服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="Market Data Service",
    description=(
        "行情数据微服务，提供以下功能：\n"
        "- 💰 实时价格（加密货币优先，股票兜底）\n"
        "- 🔍 代码搜索（CoinGecko + Alpha Vantage）\n"
        "- 🔥 热门资产\n"
        "- 🗄️ 缓存（Redis → 进程内内存降级）\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← 从上游行情源拉取并规范化\n"
        "Cache Layer        ← Redis / 内存缓存\n"
        "Aggregation Layer  ← 价格链、搜索合并、热门资产组装\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(market.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Market Data Service",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "market_data_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
