"""
Layer 1 – 数据获取层
封装两个上游行情源，统一规范化为 PriceQuote：
  CoinGecko      → 加密货币（目录 / 实时价格 / 热门）
  Alpha Vantage  → 股票（报价 / 代码搜索）
传输错误、非 2xx、格式异常一律在本层吸收，对上层表现为“无数据”。
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Protocol

import httpx

from market_data_service.layers.symbols import SymbolResolver
from market_data_service.models.market import (
    AssetClass,
    CoinCatalogEntry,
    PriceQuote,
    SearchResult,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class UpstreamError(RuntimeError):
    """上游返回了不可用的响应"""


def parse_decimal_or_default(text: Any, default: Decimal = _ZERO) -> Decimal:
    """宽松解析数值，无法解析（含 NaN / Infinity）时返回 default"""
    if text is None:
        return default
    try:
        value = Decimal(str(text).strip())
    except (InvalidOperation, ValueError):
        return default
    return value if value.is_finite() else default


def _json_payload(response: httpx.Response, source: str) -> Any:
    if not response.is_success:
        raise UpstreamError(f"{source} 请求失败: HTTP {response.status_code}")
    content_type = response.headers.get("content-type", "")
    if "json" not in content_type:
        raise UpstreamError(f"{source} 返回非 JSON 响应: {content_type or 'unknown'}")
    return response.json()


class PriceProvider(Protocol):
    """价格链中的一环：查不到返回 None，不向外抛 I/O 异常"""

    name: str

    async def try_get_price(self, symbol: str) -> Optional[PriceQuote]:
        ...


# ── CoinGecko ─────────────────────────────────────────────

class CoinGeckoClient:
    """CoinGecko REST 接口，失败时抛出异常由调用方决定如何降级"""

    def __init__(self, http: httpx.AsyncClient, base_url: str):
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def fetch_coin_list(self) -> List[CoinCatalogEntry]:
        response = await self._http.get(f"{self._base_url}/coins/list")
        payload = _json_payload(response, "CoinGecko")
        return [
            CoinCatalogEntry(
                id=str(row["id"]),
                symbol=str(row.get("symbol") or ""),
                name=str(row.get("name") or ""),
            )
            for row in payload
            if isinstance(row, dict) and row.get("id")
        ]

    async def fetch_simple_price(self, coin_id: str) -> Dict[str, Any]:
        response = await self._http.get(
            f"{self._base_url}/simple/price",
            params={
                "ids": coin_id,
                "vs_currencies": "usd",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
        )
        return _json_payload(response, "CoinGecko")

    async def fetch_trending(self) -> List[Dict[str, Any]]:
        """热门币种列表，返回各 coins[*].item 对象"""
        response = await self._http.get(f"{self._base_url}/search/trending")
        payload = _json_payload(response, "CoinGecko")
        return [
            row["item"]
            for row in payload.get("coins", [])
            if isinstance(row, dict) and isinstance(row.get("item"), dict)
        ]


class CryptoPriceProvider:
    """加密货币价格提供者（CoinGecko）"""

    name = "CoinGecko"

    def __init__(self, client: CoinGeckoClient, resolver: SymbolResolver):
        self._client = client
        self._resolver = resolver

    async def try_get_price(self, symbol: str) -> Optional[PriceQuote]:
        coin_id = await self._resolver.resolve_crypto_id(symbol)
        if coin_id is None:
            return None

        try:
            payload = await self._client.fetch_simple_price(coin_id)
        except (httpx.HTTPError, UpstreamError, ValueError) as exc:
            logger.warning(f"加密货币价格获取失败 {symbol}（{coin_id}）: {exc}")
            return None

        data = payload.get(coin_id) if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return None
        try:
            price = Decimal(str(data["usd"]))
            change = Decimal(str(data["usd_24h_change"]))
            volume = Decimal(str(data["usd_24h_vol"]))
        except (KeyError, InvalidOperation) as exc:
            logger.warning(f"CoinGecko 价格字段缺失 {symbol}（{coin_id}）: {exc}")
            return None

        return PriceQuote.from_change(symbol, price, change, volume, source=self.name)

    async def search_symbols(self, query: str, limit: int) -> List[SearchResult]:
        return [
            SearchResult(
                symbol=entry.symbol.upper(),
                name=entry.name,
                asset_class=AssetClass.CRYPTO,
                exchange=self.name,
            )
            for entry in await self._resolver.search(query, limit)
        ]

    async def fetch_trending(self) -> List[Dict[str, Any]]:
        return await self._client.fetch_trending()


# ── Alpha Vantage ─────────────────────────────────────────

class EquityPriceProvider:
    """股票价格提供者（Alpha Vantage），未配置 API Key 时永远返回无数据"""

    name = "Alpha Vantage"

    def __init__(self, http: httpx.AsyncClient, api_key: str, base_url: str):
        self._http = http
        self._api_key = api_key
        self._base_url = base_url
        self._warned_missing_key = False

    @property
    def enabled(self) -> bool:
        if not self._api_key and not self._warned_missing_key:
            logger.warning("Alpha Vantage API Key 未配置，股票数据不可用")
            self._warned_missing_key = True
        return bool(self._api_key)

    async def _query(self, **params: str) -> Any:
        response = await self._http.get(
            self._base_url, params={**params, "apikey": self._api_key}
        )
        return _json_payload(response, "Alpha Vantage")

    async def try_get_price(self, symbol: str) -> Optional[PriceQuote]:
        if not self.enabled:
            return None

        symbol = symbol.strip().upper()
        try:
            payload = await self._query(function="GLOBAL_QUOTE", symbol=symbol)
        except (httpx.HTTPError, UpstreamError, ValueError) as exc:
            logger.warning(f"股票报价获取失败 {symbol}: {exc}")
            return None

        quote = payload.get("Global Quote") if isinstance(payload, dict) else None
        # 未知代码时上游返回空对象
        if not isinstance(quote, dict) or not quote:
            logger.warning(f"Alpha Vantage 响应缺少 'Global Quote': {symbol}")
            return None

        percent_text = str(quote.get("10. change percent") or "").replace("%", "")
        return PriceQuote(
            symbol=symbol,
            current_price=parse_decimal_or_default(quote.get("05. price")),
            change_24h=parse_decimal_or_default(quote.get("09. change")),
            change_percent_24h=parse_decimal_or_default(percent_text),
            volume_24h=parse_decimal_or_default(quote.get("06. volume")),
            source=self.name,
        )

    async def search_symbols(self, query: str, limit: int) -> List[SearchResult]:
        """代码搜索，上游失败时抛出异常"""
        if not self.enabled:
            return []

        payload = await self._query(function="SYMBOL_SEARCH", keywords=query)
        matches = payload.get("bestMatches") if isinstance(payload, dict) else None
        results: List[SearchResult] = []
        for match in matches or []:
            results.append(SearchResult(
                symbol=match.get("1. symbol") or "",
                name=match.get("2. name") or "",
                asset_class=AssetClass.STOCK,
                exchange=match.get("4. region") or "US",
            ))
            if len(results) >= limit:
                break
        return results
