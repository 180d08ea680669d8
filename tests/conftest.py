"""
测试公共夹具

FakeUpstream 同时模拟 CoinGecko 与 Alpha Vantage，通过 httpx.MockTransport 注入，
测试中不会访问真实网络。
"""

import os
import sys
from collections import Counter

import httpx
import pytest

# 确保仓库根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

COINGECKO_URL = "https://coingecko.test/api/v3"
ALPHA_VANTAGE_URL = "https://alphavantage.test/query"


def _global_quote(price: str, change: str, percent: str, volume: str) -> dict:
    return {
        "01. symbol": "",
        "05. price": price,
        "06. volume": volume,
        "09. change": change,
        "10. change percent": percent,
    }


class FakeUpstream:
    """按路径 / function 参数分发的上游桩，记录每个接口的调用次数"""

    def __init__(self):
        self.coin_list = [
            {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
            {"id": "pepe", "symbol": "pepe", "name": "Pepe"},
            {"id": "pepe-2", "symbol": "pepe", "name": "Pepe 2.0"},
            {"id": "bitcoin-cash", "symbol": "bch", "name": "Bitcoin Cash"},
            {"id": "dogecoin", "symbol": "doge", "name": "Dogecoin"},
        ]
        self.prices = {
            "bitcoin": {"usd": 50000, "usd_24h_vol": 1000000000, "usd_24h_change": 1000},
            "pepe": {"usd": 0.5, "usd_24h_vol": 2000, "usd_24h_change": 0.05},
            "dogecoin": {"usd": 0.2, "usd_24h_vol": 500, "usd_24h_change": 0.01},
        }
        self.trending = [
            {"item": {"id": "pepe", "symbol": "PEPE", "name": "Pepe"}},
            {"item": {"id": "dogecoin", "symbol": "DOGE", "name": "Dogecoin"}},
        ]
        self.quotes = {
            "AAPL": _global_quote("190.50", "2.50", "1.3298%", "51000000"),
            "MSFT": _global_quote("410.00", "-1.00", "-0.2433%", "21000000"),
        }
        self.best_matches = [
            {"1. symbol": "BTCS", "2. name": "BTCS Inc", "4. region": "United States"},
            {"1. symbol": "BITO", "2. name": "ProShares Bitcoin ETF", "4. region": "United States"},
        ]
        self.fail = set()
        self.calls = Counter()

    def _endpoint(self, request: httpx.Request) -> str:
        path = request.url.path
        if path.endswith("/coins/list"):
            return "coins_list"
        if path.endswith("/simple/price"):
            return "simple_price"
        if path.endswith("/search/trending"):
            return "trending"
        return request.url.params.get("function", "").lower()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        endpoint = self._endpoint(request)
        self.calls[endpoint] += 1
        if endpoint in self.fail:
            return httpx.Response(500, json={"error": "upstream unavailable"})

        if endpoint == "coins_list":
            return httpx.Response(200, json=self.coin_list)
        if endpoint == "simple_price":
            coin_id = request.url.params["ids"]
            body = {coin_id: self.prices[coin_id]} if coin_id in self.prices else {}
            return httpx.Response(200, json=body)
        if endpoint == "trending":
            return httpx.Response(200, json={"coins": self.trending})
        if endpoint == "global_quote":
            return httpx.Response(
                200, json={"Global Quote": self.quotes.get(request.url.params["symbol"], {})}
            )
        if endpoint == "symbol_search":
            return httpx.Response(200, json={"bestMatches": self.best_matches})
        return httpx.Response(404, json={})


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings_for_tests():
    from market_data_service.config import MarketDataSettings
    return MarketDataSettings(
        COINGECKO_BASE_URL=COINGECKO_URL,
        ALPHA_VANTAGE_BASE_URL=ALPHA_VANTAGE_URL,
        ALPHA_VANTAGE_API_KEY="demo-key",
        REDIS_ENABLED=False,
    )
