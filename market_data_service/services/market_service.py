"""
行情数据服务
在聚合层之上按操作实现旁路缓存（cache-aside）：
  实时价格  price:{SYMBOL}  5 分钟，仅缓存有数据的结果
  热门资产  trending        30 分钟，仅缓存非空列表
  代码搜索  不缓存
"""

import logging
from typing import Any, List, Optional

import httpx
from fastapi import Request
from pydantic import ValidationError

from market_data_service.config import MarketDataSettings, settings
from market_data_service.layers.acquisition import (
    CoinGeckoClient,
    CryptoPriceProvider,
    EquityPriceProvider,
)
from market_data_service.layers.aggregation import MarketDataAggregator
from market_data_service.layers.cache import CacheLayer, make_key
from market_data_service.layers.symbols import SymbolResolver
from market_data_service.models.market import PriceQuote, SearchResult, TrendingEntry

logger = logging.getLogger(__name__)

_PRICE_CACHE_NS = "price"
TRENDING_CACHE_KEY = make_key("trending")


def price_cache_key(symbol: str) -> str:
    return make_key(_PRICE_CACHE_NS, symbol.strip().upper())


class MarketDataService:
    """行情数据业务服务"""

    def __init__(
        self,
        aggregator: MarketDataAggregator,
        cache: CacheLayer,
        price_ttl: int = settings.PRICE_CACHE_TTL,
        trending_ttl: int = settings.TRENDING_CACHE_TTL,
    ):
        self._aggregator = aggregator
        self._cache = cache
        self._price_ttl = price_ttl
        self._trending_ttl = trending_ttl

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    # ── 实时价格 ──────────────────────────────────────────

    async def get_price(self, symbol: str) -> Optional[PriceQuote]:
        """
        获取实时价格

        Args:
            symbol: 资产代码（BTC / AAPL ...），大小写不敏感

        Returns:
            报价；代码为空或所有数据源都没有数据时返回 None（不写缓存）
        """
        symbol = symbol.strip().upper()
        if not symbol:
            return None
        key = price_cache_key(symbol)

        cached = await self._cache.get(key)
        if cached is not None:
            try:
                return PriceQuote.model_validate(cached)
            except ValidationError as exc:
                logger.warning(f"价格缓存格式异常，忽略: {key}: {exc}")

        quote = await self._aggregator.get_current_price(symbol)
        if quote is None:
            return None

        await self._cache.set(key, quote.model_dump(mode="json"), ttl=self._price_ttl)
        return quote

    # ── 代码搜索 ──────────────────────────────────────────

    async def search(self, query: str) -> List[SearchResult]:
        """实时搜索，关键词长度由路由层校验"""
        return await self._aggregator.search_symbols(query.strip())

    # ── 热门资产 ──────────────────────────────────────────

    async def get_trending(self) -> List[TrendingEntry]:
        cached = await self._cache.get(TRENDING_CACHE_KEY)
        if cached:
            entries = self._load_trending(cached)
            if entries:
                logger.info("返回缓存的热门资产")
                return entries

        logger.info("重新获取热门资产")
        try:
            trending = await self._aggregator.get_trending_assets()
        except Exception as exc:
            logger.error(f"热门资产获取失败: {exc}", exc_info=True)
            return []

        if not trending:
            logger.warning("未获取到任何热门资产")
            return []

        await self._cache.set(
            TRENDING_CACHE_KEY,
            [entry.model_dump(mode="json") for entry in trending],
            ttl=self._trending_ttl,
        )
        return trending

    @staticmethod
    def _load_trending(cached: Any) -> List[TrendingEntry]:
        try:
            return [TrendingEntry.model_validate(row) for row in cached]
        except (TypeError, ValidationError) as exc:
            logger.warning(f"热门资产缓存格式异常，忽略: {exc}")
            return []


def build_market_service(
    cache: CacheLayer,
    http: httpx.AsyncClient,
    cfg: MarketDataSettings = settings,
) -> MarketDataService:
    """按配置组装 获取层 → 聚合层 → 服务层"""
    coingecko = CoinGeckoClient(http, cfg.COINGECKO_BASE_URL)
    resolver = SymbolResolver(cache, coingecko.fetch_coin_list, cfg.COIN_LIST_CACHE_TTL)
    aggregator = MarketDataAggregator(
        crypto=CryptoPriceProvider(coingecko, resolver),
        equity=EquityPriceProvider(http, cfg.ALPHA_VANTAGE_API_KEY, cfg.ALPHA_VANTAGE_BASE_URL),
        max_concurrency=cfg.TRENDING_MAX_CONCURRENCY,
    )
    return MarketDataService(
        aggregator,
        cache,
        price_ttl=cfg.PRICE_CACHE_TTL,
        trending_ttl=cfg.TRENDING_CACHE_TTL,
    )


def get_market_service(request: Request) -> MarketDataService:
    """FastAPI 依赖：取出 lifespan 中组装好的服务实例"""
    return request.app.state.market_service
