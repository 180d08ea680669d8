"""
Layer 2 – 缓存层
两种可互换后端：Redis（分布式） / 进程内内存，对调用方暴露同一契约：
  get    → 命中返回值，未命中或任何后端故障返回 None
  set    → 尽力写入，失败只记录日志
  remove → 尽力删除
缓存只是优化手段，缺失条目永远是合法状态。
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def make_key(namespace: str, *parts: str) -> str:
    """生成规范化缓存键"""
    raw = ":".join([namespace] + list(parts))
    if len(raw) > 200:
        raw = namespace + ":" + hashlib.md5(raw.encode()).hexdigest()
    return raw


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


class CacheLayer(ABC):
    """缓存契约，值为可 JSON 序列化的不透明记录"""

    backend: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...

    @abstractmethod
    async def stats(self) -> dict:
        ...


class RedisCacheLayer(CacheLayer):
    """Redis 后端，过期时间交给 SETEX"""

    backend = "redis"

    def __init__(self, redis: Redis):
        self._redis = redis

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._redis.get(key)
            if raw is None:
                return None
            logger.debug(f"缓存命中（Redis）: {key}")
            return json.loads(raw)
        except Exception as exc:
            logger.warning(f"Redis 读取失败，按未命中处理: {key}: {exc}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self._redis.setex(key, ttl, _dumps(value))
            logger.debug(f"缓存写入（Redis）: {key} ttl={ttl}s")
        except Exception as exc:
            logger.warning(f"Redis 写入失败: {key}: {exc}")

    async def remove(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except Exception as exc:
            logger.warning(f"Redis 删除失败: {key}: {exc}")

    async def stats(self) -> dict:
        try:
            return {"backend": self.backend, "keys": await self._redis.dbsize(), "status": "healthy"}
        except Exception as exc:
            return {"backend": self.backend, "status": "error", "error": str(exc)}


@dataclass(frozen=True)
class CacheEntry:
    payload: str
    expires_at: float


class MemoryCacheLayer(CacheLayer):
    """
    进程内后端

    条目以 JSON 文本保存，与 Redis 后端的序列化行为一致，
    调用方拿到的永远是新反序列化出的对象。
    """

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        try:
            value = json.loads(entry.payload)
        except ValueError as exc:
            logger.warning(f"内存缓存反序列化失败，按未命中处理: {key}: {exc}")
            return None
        logger.debug(f"缓存命中（内存）: {key}")
        return value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = _dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning(f"内存缓存序列化失败: {key}: {exc}")
            return
        # 顺带回收过期条目
        self._purge_expired()
        self._entries[key] = CacheEntry(payload=payload, expires_at=self._clock() + ttl)
        logger.debug(f"缓存写入（内存）: {key} ttl={ttl}s")

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]

    async def stats(self) -> dict:
        self._purge_expired()
        return {"backend": self.backend, "keys": len(self._entries), "status": "healthy"}


def build_cache_layer(redis: Optional[Redis]) -> CacheLayer:
    """Redis 可用时使用分布式缓存，否则降级为进程内缓存"""
    if redis is not None:
        logger.info("缓存后端: Redis")
        return RedisCacheLayer(redis)
    logger.warning("⚠️ 缓存后端降级为进程内内存")
    return MemoryCacheLayer()
