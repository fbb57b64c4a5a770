"""Redis-backed fast tier for session state, recent interactions and caches.

Shared by every engine instance. All values are JSON-encoded. Every operation
degrades to a neutral default (and a log line) when Redis is unreachable, so
the conversation path never fails because the fast tier did.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

import redis
import redis.asyncio as aioredis

from dialogue_memory.config import ENGINE_CONFIG, REDIS_URL

logger = logging.getLogger(__name__)


class FastTier:
    """Async Redis wrapper with JSON values and namespaced keys."""

    def __init__(self, client: aioredis.Redis, namespace: str | None = None) -> None:
        self.client = client
        self.namespace = namespace or ENGINE_CONFIG["namespace"]
        self._connected = False
        self._listeners: dict[str, asyncio.Task] = {}

    @classmethod
    def from_url(cls, url: str | None = None, namespace: str | None = None) -> FastTier:
        client = aioredis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        return cls(client, namespace=namespace)

    async def connect(self) -> bool:
        try:
            await self.client.ping()
            self._connected = True
        except (redis.RedisError, OSError) as e:
            logger.warning("Fast tier unreachable, continuing without it: %s", e)
            self._connected = False
        return self._connected

    async def close(self) -> None:
        for task in self._listeners.values():
            task.cancel()
        for task in self._listeners.values():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._listeners.clear()
        await self.client.aclose()
        self._connected = False

    def is_ready(self) -> bool:
        return self._connected

    def key(self, *parts: str) -> str:
        return ":".join((self.namespace, *parts))

    # ── Interaction list (newest first) ──

    async def add_interaction(self, data: dict[str, Any]) -> bool:
        if not self.is_ready():
            return False
        key = self.key("interactions")
        try:
            await self.client.lpush(key, json.dumps(data))
            await self.client.ltrim(key, 0, ENGINE_CONFIG["max_fast_tier_interactions"] - 1)
            return True
        except redis.RedisError:
            logger.exception("Failed to add interaction to fast tier")
            return False

    async def get_interactions(self, start: int, end: int) -> list[dict[str, Any]]:
        """Return interactions by list index (0 = newest), inclusive of ``end``."""
        if not self.is_ready() or end < start:
            return []
        try:
            raw = await self.client.lrange(self.key("interactions"), start, end)
        except redis.RedisError:
            logger.exception("Failed to read interactions from fast tier")
            return []
        return [json.loads(item) for item in raw]

    async def get_recent_interactions(self, count: int) -> list[dict[str, Any]]:
        return await self.get_interactions(0, count - 1)

    async def get_interaction_count(self) -> int:
        if not self.is_ready():
            return 0
        try:
            return await self.client.llen(self.key("interactions"))
        except redis.RedisError:
            logger.exception("Failed to count fast tier interactions")
            return 0

    # ── Summaries ──

    async def add_summary(self, summary: dict[str, Any], score: float) -> bool:
        if not self.is_ready():
            return False
        summary_key = self.key("summaries", summary["id"])
        try:
            await self.client.set(summary_key, json.dumps(summary))
            await self.client.zadd(self.key("summaries", "index"), {summary_key: score})
            await self.client.sadd(self.key("summarized"), *summary["interaction_ids"])
            return True
        except redis.RedisError:
            logger.exception("Failed to add summary to fast tier")
            return False

    async def get_summaries(self, limit: int) -> list[dict[str, Any]]:
        """Most recent summaries first."""
        if not self.is_ready() or limit <= 0:
            return []
        try:
            keys = await self.client.zrange(self.key("summaries", "index"), 0, limit - 1, desc=True)
            summaries = []
            for summary_key in keys:
                raw = await self.client.get(summary_key)
                if raw:
                    summaries.append(json.loads(raw))
            return summaries
        except redis.RedisError:
            logger.exception("Failed to read summaries from fast tier")
            return []

    async def get_summarized_ids(self) -> set[str]:
        if not self.is_ready():
            return set()
        try:
            return set(await self.client.smembers(self.key("summarized")))
        except redis.RedisError:
            logger.exception("Failed to read summarized ids")
            return set()

    # ── Hash state ──

    async def update_hash(self, key: str, updates: dict[str, Any]) -> bool:
        if not self.is_ready() or not updates:
            return False
        try:
            await self.client.hset(key, mapping={k: json.dumps(v) for k, v in updates.items()})
            return True
        except redis.RedisError:
            logger.exception("Failed to update hash %s", key)
            return False

    async def get_hash(self, key: str) -> dict[str, Any]:
        if not self.is_ready():
            return {}
        try:
            raw = await self.client.hgetall(key)
        except redis.RedisError:
            logger.exception("Failed to read hash %s", key)
            return {}
        return {k: json.loads(v) for k, v in raw.items()}

    # ── Plain values ──

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        if not self.is_ready():
            return False
        try:
            await self.client.set(key, json.dumps(value), ex=ttl)
            return True
        except redis.RedisError:
            logger.exception("Failed to set %s", key)
            return False

    async def get_json(self, key: str) -> Any:
        if not self.is_ready():
            return None
        try:
            raw = await self.client.get(key)
        except redis.RedisError:
            logger.exception("Failed to get %s", key)
            return None
        return json.loads(raw) if raw is not None else None

    async def delete(self, *keys: str) -> bool:
        if not self.is_ready() or not keys:
            return False
        try:
            await self.client.delete(*keys)
            return True
        except redis.RedisError:
            logger.exception("Failed to delete %s", keys)
            return False

    # ── Queues ──

    async def push(self, key: str, value: Any, max_length: int | None = None, ttl: int | None = None) -> bool:
        """Queue ``value``. With ``max_length`` the oldest entries beyond it are dropped."""
        if not self.is_ready():
            return False
        try:
            await self.client.lpush(key, json.dumps(value))
            if max_length is not None:
                await self.client.ltrim(key, 0, max_length - 1)
            if ttl is not None:
                await self.client.expire(key, ttl)
            return True
        except redis.RedisError:
            logger.exception("Failed to push onto %s", key)
            return False

    async def pop(self, key: str) -> Any:
        """Pop the oldest queued value."""
        if not self.is_ready():
            return None
        try:
            raw = await self.client.rpop(key)
        except redis.RedisError:
            logger.exception("Failed to pop from %s", key)
            return None
        return json.loads(raw) if raw is not None else None

    async def get_list(self, key: str, count: int) -> list[Any]:
        """Up to ``count`` pushed values, newest first."""
        if not self.is_ready() or count <= 0:
            return []
        try:
            raw = await self.client.lrange(key, 0, count - 1)
        except redis.RedisError:
            logger.exception("Failed to read %s", key)
            return []
        return [json.loads(item) for item in raw]

    # ── Pub/sub ──

    async def publish(self, channel: str, message: dict[str, Any]) -> bool:
        if not self.is_ready():
            return False
        try:
            await self.client.publish(channel, json.dumps(message))
            return True
        except redis.RedisError:
            logger.exception("Failed to publish to %s", channel)
            return False

    async def subscribe(self, channel: str, callback: Callable[[dict[str, Any]], None]) -> bool:
        """Deliver decoded messages on ``channel`` to ``callback`` from a background task."""
        if not self.is_ready() or channel in self._listeners:
            return False
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except redis.RedisError:
            logger.exception("Failed to subscribe to %s", channel)
            return False
        self._listeners[channel] = asyncio.create_task(self._listen(pubsub, callback))
        return True

    async def unsubscribe(self, channel: str) -> None:
        task = self._listeners.pop(channel, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _listen(self, pubsub, callback) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    callback(json.loads(message["data"]))
                except Exception:
                    logger.exception("Error handling pub/sub message")
        finally:
            await pubsub.aclose()
