"""
Key/value metadata storage for coupons.
"""

from typing import Dict, Iterable, Mapping, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import StoreError


class MetaStore(Protocol):
    """Per-entity key/value metadata."""

    async def get_meta(self, entity_id: str, key: str) -> Optional[str]:
        ...

    async def get_all_meta(self, entity_id: str) -> Dict[str, str]:
        ...

    async def update_meta(self, entity_id: str, key: str, value: str) -> None:
        ...

    async def delete_meta(self, entity_id: str, key: str) -> None:
        ...

    async def replace_meta(
        self,
        entity_id: str,
        delete_keys: Iterable[str],
        values: Mapping[str, str]
    ) -> None:
        """Delete ``delete_keys`` then write ``values`` as one change."""
        ...


class InMemoryMetaStore:
    """Process-local metadata store for development and tests."""

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {}

    async def get_meta(self, entity_id: str, key: str) -> Optional[str]:
        return self._data.get(entity_id, {}).get(key)

    async def get_all_meta(self, entity_id: str) -> Dict[str, str]:
        return dict(self._data.get(entity_id, {}))

    async def update_meta(self, entity_id: str, key: str, value: str) -> None:
        self._data.setdefault(entity_id, {})[key] = value

    async def delete_meta(self, entity_id: str, key: str) -> None:
        self._data.get(entity_id, {}).pop(key, None)

    async def replace_meta(
        self,
        entity_id: str,
        delete_keys: Iterable[str],
        values: Mapping[str, str]
    ) -> None:
        meta = dict(self._data.get(entity_id, {}))
        for key in delete_keys:
            meta.pop(key, None)
        meta.update(values)
        self._data[entity_id] = meta

    async def health_check(self) -> bool:
        return True


class RedisMetaStore:
    """Metadata store keeping one Redis hash per entity."""

    def __init__(self, redis_url: str, key_prefix: str = "coupon_meta:"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("coupon_roles.persistence.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect to Redis."""
        try:
            client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            await client.ping()
            self.redis = client

            self.logger.info("Redis metadata store started")

        except RedisError as e:
            self.logger.error("Failed to start Redis metadata store", error=str(e))
            raise StoreError("Failed to connect to Redis", {"error": str(e)})

    async def stop(self):
        """Close the Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis metadata store stopped")

    async def _get_redis(self) -> redis.Redis:
        if self.redis is None:
            await self.start()
        return self.redis

    def _key(self, entity_id: str) -> str:
        return f"{self.key_prefix}{entity_id}"

    async def get_meta(self, entity_id: str, key: str) -> Optional[str]:
        client = await self._get_redis()
        try:
            return await client.hget(self._key(entity_id), key)
        except RedisError as e:
            self.logger.error("Error reading coupon metadata", entity_id=entity_id, key=key, error=str(e))
            raise StoreError("Failed to read coupon metadata", {"entity_id": entity_id})

    async def get_all_meta(self, entity_id: str) -> Dict[str, str]:
        client = await self._get_redis()
        try:
            return dict(await client.hgetall(self._key(entity_id)))
        except RedisError as e:
            self.logger.error("Error reading coupon metadata", entity_id=entity_id, error=str(e))
            raise StoreError("Failed to read coupon metadata", {"entity_id": entity_id})

    async def update_meta(self, entity_id: str, key: str, value: str) -> None:
        client = await self._get_redis()
        try:
            await client.hset(self._key(entity_id), key, value)
        except RedisError as e:
            self.logger.error("Error writing coupon metadata", entity_id=entity_id, key=key, error=str(e))
            raise StoreError("Failed to write coupon metadata", {"entity_id": entity_id})

    async def delete_meta(self, entity_id: str, key: str) -> None:
        client = await self._get_redis()
        try:
            await client.hdel(self._key(entity_id), key)
        except RedisError as e:
            self.logger.error("Error deleting coupon metadata", entity_id=entity_id, key=key, error=str(e))
            raise StoreError("Failed to delete coupon metadata", {"entity_id": entity_id})

    async def replace_meta(
        self,
        entity_id: str,
        delete_keys: Iterable[str],
        values: Mapping[str, str]
    ) -> None:
        keys = list(delete_keys)
        mapping = dict(values)
        if not keys and not mapping:
            return

        client = await self._get_redis()
        cache_key = self._key(entity_id)
        try:
            async with client.pipeline(transaction=True) as pipe:
                if keys:
                    pipe.hdel(cache_key, *keys)
                if mapping:
                    pipe.hset(cache_key, mapping=mapping)
                await pipe.execute()
        except RedisError as e:
            self.logger.error("Error replacing coupon metadata", entity_id=entity_id, error=str(e))
            raise StoreError("Failed to write coupon metadata", {"entity_id": entity_id})

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            client = await self._get_redis()
            return bool(await client.ping())
        except (StoreError, RedisError):
            return False
