"""行情数据模型：报价、搜索结果、热门资产、币种目录"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def percent_change(change: Decimal, price: Decimal) -> Decimal:
    """涨跌幅 = 涨跌额 / 现价 * 100，现价为 0 时返回 0"""
    if price == 0:
        return _ZERO
    return change / price * _HUNDRED


class AssetClass(str, Enum):
    CRYPTO = "Crypto"
    STOCK = "Stock"


class _MarketModel(BaseModel):
    """行情模型实例创建后不可变"""

    model_config = ConfigDict(frozen=True)


class PriceQuote(_MarketModel):
    """单个资产的实时报价"""

    symbol: str
    current_price: Decimal = _ZERO
    change_24h: Decimal = _ZERO
    change_percent_24h: Decimal = _ZERO
    volume_24h: Decimal = _ZERO
    last_updated: datetime = Field(default_factory=_utcnow)
    source: str = ""

    @classmethod
    def from_change(
        cls,
        symbol: str,
        price: Decimal,
        change: Decimal,
        volume: Decimal,
        source: str,
    ) -> "PriceQuote":
        """由现价与涨跌额构造报价，涨跌幅按现价推导"""
        return cls(
            symbol=symbol.upper(),
            current_price=price,
            change_24h=change,
            change_percent_24h=percent_change(change, price),
            volume_24h=volume,
            source=source,
        )


class SearchResult(_MarketModel):
    symbol: str
    name: str
    asset_class: AssetClass
    exchange: str


class TrendingEntry(PriceQuote):
    """热门资产：报价字段 + 展示名称"""

    name: str = ""

    @classmethod
    def from_quote(
        cls, symbol: str, name: str, quote: Optional[PriceQuote], source: str
    ) -> "TrendingEntry":
        if quote is None:
            return cls(symbol=symbol.upper(), name=name, source=source)
        return cls(
            symbol=symbol.upper(),
            name=name,
            current_price=quote.current_price,
            change_24h=quote.change_24h,
            change_percent_24h=quote.change_percent_24h,
            volume_24h=quote.volume_24h,
            last_updated=quote.last_updated,
            source=quote.source,
        )


class CoinCatalogEntry(_MarketModel):
    """CoinGecko 币种目录条目"""

    id: str
    symbol: str
    name: str
