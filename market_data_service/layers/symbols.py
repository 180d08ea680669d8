"""
符号解析层
把用户输入的代码（BTC / PEPE ...）解析为 CoinGecko 的币种 id。
先查常用币种静态表，未命中再查完整币种目录（目录本身走缓存层，TTL 6 小时）。
目录每次加载后在进程内保留一份带代码索引的快照，并发查询共用同一次加载。
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from market_data_service.layers.cache import CacheLayer, make_key
from market_data_service.models.market import CoinCatalogEntry

logger = logging.getLogger(__name__)

# 同一代码在目录中可能对应多个币种，主流币种固定映射避免歧义
KNOWN_CRYPTO_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "SOL": "solana",
    "ADA": "cardano",
    "XRP": "ripple",
}

COIN_LIST_CACHE_KEY = make_key("coingecko_coin_list")
CATALOG_SNAPSHOT_TTL = 60  # 进程内快照有效期（秒）

CatalogSource = Callable[[], Awaitable[List[CoinCatalogEntry]]]


@dataclass(frozen=True)
class CatalogSnapshot:
    """一次目录加载的结果：id 索引 + 代码索引"""

    by_id: Dict[str, CoinCatalogEntry]
    by_symbol: Dict[str, CoinCatalogEntry]
    expires_at: float

    @classmethod
    def build(cls, by_id: Dict[str, CoinCatalogEntry], expires_at: float) -> "CatalogSnapshot":
        # 同代码多个条目时保留目录顺序中的第一个
        by_symbol: Dict[str, CoinCatalogEntry] = {}
        for entry in by_id.values():
            by_symbol.setdefault(entry.symbol.lower(), entry)
        return cls(by_id=by_id, by_symbol=by_symbol, expires_at=expires_at)


class SymbolResolver:
    """币种代码 → CoinGecko id"""

    def __init__(
        self,
        cache: CacheLayer,
        catalog_source: CatalogSource,
        catalog_ttl: int,
        snapshot_ttl: float = CATALOG_SNAPSHOT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache = cache
        self._catalog_source = catalog_source
        self._catalog_ttl = catalog_ttl
        self._snapshot_ttl = min(snapshot_ttl, catalog_ttl)
        self._clock = clock
        self._snapshot: Optional[CatalogSnapshot] = None
        self._lock = asyncio.Lock()

    def _fresh_snapshot(self) -> Optional[CatalogSnapshot]:
        snapshot = self._snapshot
        if snapshot is not None and snapshot.expires_at > self._clock():
            return snapshot
        return None

    async def _load_snapshot(self) -> Optional[CatalogSnapshot]:
        snapshot = self._fresh_snapshot()
        if snapshot is not None:
            return snapshot

        async with self._lock:
            snapshot = self._fresh_snapshot()
            if snapshot is not None:
                return snapshot
            catalog = await self._read_catalog()
            if not catalog:
                return None
            self._snapshot = CatalogSnapshot.build(catalog, self._clock() + self._snapshot_ttl)
            return self._snapshot

    async def _read_catalog(self) -> Dict[str, CoinCatalogEntry]:
        cached = await self._cache.get(COIN_LIST_CACHE_KEY)
        if cached is not None:
            try:
                return {
                    coin_id: CoinCatalogEntry.model_validate(row)
                    for coin_id, row in cached.items()
                }
            except (AttributeError, ValidationError) as exc:
                logger.warning(f"币种目录缓存格式异常，重新拉取: {exc}")

        try:
            entries = await self._catalog_source()
        except Exception as exc:
            logger.error(f"币种目录加载失败: {exc}")
            return {}

        catalog: Dict[str, CoinCatalogEntry] = {}
        for entry in entries:
            catalog.setdefault(entry.id, entry)

        if catalog:
            await self._cache.set(
                COIN_LIST_CACHE_KEY,
                {coin_id: entry.model_dump() for coin_id, entry in catalog.items()},
                ttl=self._catalog_ttl,
            )
            logger.info(f"币种目录已刷新，共 {len(catalog)} 条")
        return catalog

    async def get_catalog(self) -> Dict[str, CoinCatalogEntry]:
        """
        获取完整币种目录（以 id 为键，保持上游顺序）

        拉取失败时本次返回空目录，不写缓存，下次调用重新拉取。
        """
        snapshot = await self._load_snapshot()
        return dict(snapshot.by_id) if snapshot else {}

    async def find_by_symbol(self, symbol: str) -> Optional[CoinCatalogEntry]:
        """按代码查找目录条目，多个条目同代码时取目录顺序中的第一个"""
        snapshot = await self._load_snapshot()
        if snapshot is None:
            return None
        return snapshot.by_symbol.get(symbol.lower())

    async def resolve_crypto_id(self, symbol: str) -> Optional[str]:
        if not symbol or not symbol.strip():
            raise ValueError("symbol must not be empty")
        symbol = symbol.strip()

        known = KNOWN_CRYPTO_IDS.get(symbol.upper())
        if known:
            return known

        entry = await self.find_by_symbol(symbol)
        return entry.id if entry else None

    async def search(self, query: str, limit: int) -> List[CoinCatalogEntry]:
        """名称包含关键词，或代码完全相等（均忽略大小写），按目录顺序截取"""
        q = query.strip().lower()
        matches: List[CoinCatalogEntry] = []
        if not q:
            return matches
        snapshot = await self._load_snapshot()
        for entry in (snapshot.by_id.values() if snapshot else ()):
            if q in entry.name.lower() or entry.symbol.lower() == q:
                matches.append(entry)
                if len(matches) >= limit:
                    break
        return matches
