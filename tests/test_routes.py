"""
配置与 HTTP 路由测试

覆盖范围：
  - 配置模块（服务发现、Redis URL）
  - API 响应模型
  - FastAPI 路由（TestClient，上游通过 MockTransport 模拟，不需要 Redis）
"""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from market_data_service import __version__
from market_data_service.layers.cache import MemoryCacheLayer
from market_data_service.services.market_service import build_market_service


# ─────────────────────────────────────────────────────────
# 1. 配置模块测试
# ─────────────────────────────────────────────────────────

class TestConfig:
    def test_defaults(self):
        from market_data_service.config import MarketDataSettings
        s = MarketDataSettings()
        assert s.PORT == 5088
        assert s.PRICE_CACHE_TTL == 300
        assert s.TRENDING_CACHE_TTL == 1800
        assert s.COIN_LIST_CACHE_TTL == 21600

    def test_redis_url_no_auth(self):
        from market_data_service.config import MarketDataSettings
        s = MarketDataSettings(REDIS_PASSWORD="", REDIS_HOST="cache", REDIS_PORT=6380, REDIS_DB=2)
        assert s.REDIS_URL == "redis://cache:6380/2"

    def test_redis_url_with_auth(self):
        from market_data_service.config import MarketDataSettings
        s = MarketDataSettings(REDIS_PASSWORD="secret", REDIS_HOST="cache", REDIS_PORT=6379)
        assert ":secret@cache:6379" in s.REDIS_URL

    def test_docker_service_discovery(self):
        """Docker 环境下默认使用服务名而非 localhost"""
        with patch.dict(os.environ, {"DOCKER_CONTAINER": "true"}, clear=False):
            from market_data_service import config as cfg_module
            assert cfg_module._default_redis_host() == "redis"

    def test_local_defaults(self):
        with patch.dict(os.environ, {"DOCKER_CONTAINER": "false"}, clear=False), \
             patch("os.path.exists", return_value=False):
            from market_data_service import config as cfg_module
            assert cfg_module._default_redis_host() == "localhost"


class TestConnections:
    @pytest.mark.asyncio
    async def test_http_client_shared_until_closed(self):
        from market_data_service import db
        first = db.init_http_client()
        assert db.init_http_client() is first
        await db.close_connections()
        assert first.is_closed
        second = db.init_http_client()
        assert second is not first
        await db.close_connections()


# ─────────────────────────────────────────────────────────
# 2. API 响应模型测试
# ─────────────────────────────────────────────────────────

class TestApiResponse:
    def test_ok(self):
        from market_data_service.models.response import ApiResponse
        r = ApiResponse.ok(data={"key": "value"}, message="done")
        assert r.success is True
        assert r.data == {"key": "value"}
        assert r.error is None

    def test_fail_to_response(self):
        from market_data_service.models.response import ApiResponse
        resp = ApiResponse.fail(error="not_found").to_response(404)
        assert resp.status_code == 404
        assert b'"success":false' in resp.body


# ─────────────────────────────────────────────────────────
# 3. HTTP 路由测试
# ─────────────────────────────────────────────────────────

@pytest.fixture
def market_service(upstream, clock, settings_for_tests):
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return build_market_service(MemoryCacheLayer(clock=clock), http, settings_for_tests)


def _client(service, **kwargs):
    """启动应用，用给定的服务实例替换 lifespan 中组装的服务"""
    from market_data_service.main import app
    with patch("market_data_service.main.init_redis", new_callable=AsyncMock, return_value=False), \
         patch("market_data_service.main.init_http_client", return_value=MagicMock()), \
         patch("market_data_service.main.build_market_service", return_value=service), \
         patch("market_data_service.main.close_connections", new_callable=AsyncMock), \
         patch("market_data_service.routers.health.check_health", new_callable=AsyncMock, return_value={
             "redis": {"status": "disabled"},
         }):
        with TestClient(app, **kwargs) as c:
            yield c


@pytest.fixture
def client(market_service):
    yield from _client(market_service)


class TestHealthRoutes:
    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert body["data"]["databases"]["redis"]["status"] == "disabled"
        assert body["data"]["cache"]["backend"] == "memory"
        assert body["data"]["version"] == __version__

    def test_healthz_endpoint(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_readyz_endpoint(self, client):
        resp = client.get("/readyz")
        assert resp.json()["ready"] is True

    def test_root_endpoint(self, client):
        body = client.get("/").json()
        assert "version" in body
        assert "docs" in body

    def test_market_health(self, client):
        body = client.get("/api/market/health").json()
        assert body["status"] == "Healthy"
        assert body["service"] == "Market Data API"
        assert "timestamp" in body

    def test_process_time_header(self, client):
        assert client.get("/healthz").headers["X-Process-Time"].endswith("ms")


class TestPriceRoute:
    def test_crypto_price(self, client):
        resp = client.get("/api/market/price/btc")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["symbol"] == "BTC"
        assert data["source"] == "CoinGecko"
        assert float(data["current_price"]) == 50000
        assert float(data["change_percent_24h"]) == 2.0

    def test_equity_price(self, client):
        data = client.get("/api/market/price/AAPL").json()["data"]
        assert data["source"] == "Alpha Vantage"
        assert data["current_price"] == "190.50"

    def test_unknown_symbol_is_404(self, client, upstream):
        resp = client.get("/api/market/price/ZZZZ")
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "not_found"
        assert "ZZZZ" in body["message"]

    def test_blank_symbol_is_404(self, client):
        resp = client.get("/api/market/price/%20%20")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_second_request_served_from_cache(self, client, upstream):
        client.get("/api/market/price/BTC")
        client.get("/api/market/price/BTC")
        assert upstream.calls["simple_price"] == 1


class TestSearchRoute:
    def test_search(self, client):
        resp = client.get("/api/market/search", params={"query": "bitcoin"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["query"] == "bitcoin"
        assert data["count"] == 4
        assert [r["asset_class"] for r in data["results"]] == ["Crypto", "Crypto", "Stock", "Stock"]

    @pytest.mark.parametrize("query", ["", "b", "  b  "])
    def test_short_query_is_400(self, client, upstream, query):
        resp = client.get("/api/market/search", params={"query": query})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_query"
        assert sum(upstream.calls.values()) == 0

    def test_missing_query_is_400(self, client):
        assert client.get("/api/market/search").status_code == 400

    def test_equity_outage_still_200(self, client, upstream):
        upstream.fail.add("symbol_search")
        data = client.get("/api/market/search", params={"query": "bitcoin"}).json()["data"]
        assert [r["symbol"] for r in data["results"]] == ["BTC", "BCH"]


class TestTrendingRoute:
    def test_trending(self, client):
        data = client.get("/api/market/trending").json()["data"]
        assert data["count"] == 4
        assert [a["symbol"] for a in data["assets"]] == ["PEPE", "DOGE", "AAPL", "MSFT"]
        assert data["assets"][0]["name"] == "Pepe"

    def test_all_upstreams_down_is_empty_200(self, client, upstream):
        upstream.fail.update({"trending", "global_quote"})
        resp = client.get("/api/market/trending")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"count": 0, "assets": []}


class TestCacheRoutes:
    def test_stats(self, client):
        client.get("/api/market/price/BTC")
        data = client.get("/api/cache/stats").json()["data"]
        assert data["backend"] == "memory"
        assert data["keys"] >= 1

    def test_clear_forces_refetch(self, client, upstream):
        client.get("/api/market/price/BTC")
        resp = client.post("/api/cache/clear", json={"namespace": "price", "key_parts": ["BTC"]})
        assert resp.status_code == 200
        assert resp.json()["message"] == "缓存已清理: price:BTC"
        client.get("/api/market/price/BTC")
        assert upstream.calls["simple_price"] == 2


class TestUnhandledError:
    def test_global_handler_returns_500(self):
        service = MagicMock()
        service.get_price = AsyncMock(side_effect=RuntimeError("boom"))
        for c in _client(service, raise_server_exceptions=False):
            resp = c.get("/api/market/price/BTC")
            assert resp.status_code == 500
            body = resp.json()
            assert body["success"] is False
            assert body["message"] == "boom"
