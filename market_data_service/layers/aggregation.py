"""
Layer 3 – 聚合层
  实时价格 : 加密货币优先，股票兜底，按价格链顺序取第一个有数据的结果
  代码搜索 : 两个数据源并发查询，单个数据源失败不影响另一个
  热门资产 : CoinGecko 热门币种（逐个补全价格） + 固定的热门股票列表
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, Sequence

from market_data_service.layers.acquisition import (
    CryptoPriceProvider,
    EquityPriceProvider,
    PriceProvider,
)
from market_data_service.models.market import PriceQuote, SearchResult, TrendingEntry

logger = logging.getLogger(__name__)

POPULAR_STOCKS = ("AAPL", "MSFT", "GOOGL", "AMZN", "TSLA")
TRENDING_CRYPTO_LIMIT = 10
CRYPTO_SEARCH_LIMIT = 10
EQUITY_SEARCH_LIMIT = 20


class MarketDataAggregator:
    """行情聚合：价格链 / 搜索 / 热门资产"""

    def __init__(
        self,
        crypto: CryptoPriceProvider,
        equity: EquityPriceProvider,
        max_concurrency: int = 5,
        price_chain: Optional[Sequence[PriceProvider]] = None,
    ):
        self._crypto = crypto
        self._equity = equity
        self._price_chain: List[PriceProvider] = list(price_chain or (crypto, equity))
        self._max_concurrency = max(1, max_concurrency)

    # ── 实时价格 ──────────────────────────────────────────

    async def get_current_price(self, symbol: str) -> Optional[PriceQuote]:
        for provider in self._price_chain:
            quote = await provider.try_get_price(symbol)
            if quote is not None:
                return quote
        logger.info(f"所有数据源均无 {symbol} 的价格数据")
        return None

    # ── 代码搜索 ──────────────────────────────────────────

    async def search_symbols(self, query: str) -> List[SearchResult]:
        """加密货币结果在前（≤10），股票结果在后（≤20）"""
        crypto_results, equity_results = await asyncio.gather(
            self._search_source("加密货币", self._crypto.search_symbols(query, CRYPTO_SEARCH_LIMIT)),
            self._search_source("股票", self._equity.search_symbols(query, EQUITY_SEARCH_LIMIT)),
        )
        return crypto_results + equity_results

    @staticmethod
    async def _search_source(
        label: str, pending: Awaitable[List[SearchResult]]
    ) -> List[SearchResult]:
        try:
            return await pending
        except Exception as exc:
            logger.error(f"{label}代码搜索失败: {exc}")
            return []

    # ── 热门资产 ──────────────────────────────────────────

    async def get_trending_assets(self) -> List[TrendingEntry]:
        """
        热门资产列表，任何上游失败都只会让结果变短，不会抛出

        顺序：热门币种按上游顺序在前，热门股票按固定顺序在后。
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)
        trending = await self._trending_crypto(semaphore)
        trending.extend(await self._popular_stocks(semaphore))
        return trending

    async def _trending_crypto(self, semaphore: asyncio.Semaphore) -> List[TrendingEntry]:
        try:
            items = await self._crypto.fetch_trending()
        except Exception as exc:
            logger.error(f"热门币种获取失败: {exc}")
            return []

        coins = []
        for item in items:
            symbol = str(item.get("symbol") or "").strip()
            if not symbol:
                continue
            coins.append((symbol, str(item.get("name") or symbol)))
            if len(coins) >= TRENDING_CRYPTO_LIMIT:
                break

        async def enrich(symbol: str, name: str) -> TrendingEntry:
            async with semaphore:
                quote = await self._crypto.try_get_price(symbol)
            return TrendingEntry.from_quote(symbol, name, quote, source=self._crypto.name)

        return list(await asyncio.gather(*(enrich(s, n) for s, n in coins)))

    async def _popular_stocks(self, semaphore: asyncio.Semaphore) -> List[TrendingEntry]:
        async def lookup(symbol: str) -> Optional[PriceQuote]:
            async with semaphore:
                return await self._equity.try_get_price(symbol)

        quotes = await asyncio.gather(*(lookup(s) for s in POPULAR_STOCKS))
        return [
            TrendingEntry.from_quote(symbol, symbol, quote, source=self._equity.name)
            for symbol, quote in zip(POPULAR_STOCKS, quotes)
            if quote is not None
        ]
