"""
Unit tests for coupon metadata stores and the restriction adapter.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import StoreError, ValidationError
from service_coupon_roles.app.persistence.meta_store import InMemoryMetaStore, RedisMetaStore
from service_coupon_roles.app.persistence.restriction_store import (
    RestrictionStore, ALLOWED_PREFIX, EXCLUDED_PREFIX
)
from service_coupon_roles.app.rules.models import GUEST, RoleSet, RestrictionSettings


class TestRestrictionStore:
    """Test cases for RestrictionStore."""

    @pytest.fixture
    def meta_store(self):
        """Create in-memory metadata store."""
        return InMemoryMetaStore()

    @pytest.fixture
    def store(self, meta_store):
        """Create restriction store."""
        return RestrictionStore(meta_store)

    @pytest.fixture
    def roles(self):
        """Create role set."""
        return RoleSet({"editor": "Editor", "subscriber": "Subscriber", "customer": "Customer"})

    @pytest.mark.asyncio
    async def test_load_empty(self, store, roles):
        """Test a coupon without metadata is unrestricted."""
        settings = await store.load_restriction_settings("coupon-1", roles)

        assert settings.is_unrestricted

    @pytest.mark.asyncio
    async def test_load_only_yes_values(self, store, meta_store, roles):
        """Test only exact "yes" values select a role."""
        await meta_store.update_meta("coupon-1", ALLOWED_PREFIX + "editor", "yes")
        await meta_store.update_meta("coupon-1", ALLOWED_PREFIX + "subscriber", "true")
        await meta_store.update_meta("coupon-1", ALLOWED_PREFIX + "customer", "no")
        await meta_store.update_meta("coupon-1", EXCLUDED_PREFIX + GUEST, "yes")
        await meta_store.update_meta("coupon-1", EXCLUDED_PREFIX + "customer", "")

        settings = await store.load_restriction_settings("coupon-1", roles)

        assert settings.allowed == frozenset({"editor"})
        assert settings.excluded == frozenset({GUEST})

    @pytest.mark.asyncio
    async def test_load_ignores_roles_outside_role_set(self, store, meta_store, roles):
        """Test metadata for deleted roles is not loaded."""
        await meta_store.update_meta("coupon-1", ALLOWED_PREFIX + "retired_role", "yes")

        settings = await store.load_restriction_settings("coupon-1", roles)

        assert settings.allowed == frozenset()

    @pytest.mark.asyncio
    async def test_save_and_load(self, store, roles):
        """Test saved settings load back unchanged."""
        settings = RestrictionSettings(allowed={"subscriber", GUEST}, excluded={"editor"})

        await store.save_restriction_settings("coupon-1", settings, roles)

        assert await store.load_restriction_settings("coupon-1", roles) == settings

    @pytest.mark.asyncio
    async def test_save_resets_previous_selection(self, store, meta_store, roles):
        """Test saving clears roles that are no longer selected."""
        await store.save_restriction_settings(
            "coupon-1", RestrictionSettings(allowed={"editor"}, excluded={"customer"}), roles
        )
        await store.save_restriction_settings(
            "coupon-1", RestrictionSettings(allowed={"subscriber"}), roles
        )

        meta = await meta_store.get_all_meta("coupon-1")

        assert meta == {ALLOWED_PREFIX + "subscriber": "yes"}

    @pytest.mark.asyncio
    async def test_save_keeps_unrelated_metadata(self, store, meta_store, roles):
        """Test saving only touches role restriction keys."""
        await meta_store.update_meta("coupon-1", "usage_limit", "10")

        await store.save_restriction_settings("coupon-1", RestrictionSettings(), roles)

        assert await meta_store.get_meta("coupon-1", "usage_limit") == "10"

    @pytest.mark.asyncio
    async def test_save_rejects_unknown_roles(self, store, meta_store, roles):
        """Test unknown role ids are rejected before anything is written."""
        await store.save_restriction_settings("coupon-1", RestrictionSettings(allowed={"editor"}), roles)

        with pytest.raises(ValidationError) as exc_info:
            await store.save_restriction_settings(
                "coupon-1", RestrictionSettings(allowed={"ghost_role"}), roles
            )

        assert exc_info.value.details == {"unknown_roles": ["ghost_role"]}
        assert await meta_store.get_meta("coupon-1", ALLOWED_PREFIX + "editor") == "yes"


class TestInMemoryMetaStore:
    """Test cases for InMemoryMetaStore."""

    @pytest.mark.asyncio
    async def test_get_update_delete(self):
        """Test basic metadata operations."""
        meta_store = InMemoryMetaStore()

        assert await meta_store.get_meta("c", "k") is None
        await meta_store.update_meta("c", "k", "v")
        assert await meta_store.get_meta("c", "k") == "v"
        await meta_store.delete_meta("c", "k")
        assert await meta_store.get_all_meta("c") == {}
        assert await meta_store.health_check() is True


class TestRedisMetaStore:
    """Test cases for RedisMetaStore."""

    @pytest.fixture
    def mock_redis(self):
        """Create mock Redis client."""
        client = AsyncMock()
        client.ping.return_value = True
        return client

    @pytest.fixture
    def meta_store(self, mock_redis):
        """Create Redis metadata store with a mocked client."""
        meta_store = RedisMetaStore("redis://localhost:6379/0", key_prefix="test_meta:")
        meta_store.redis = mock_redis
        return meta_store

    @pytest.mark.asyncio
    async def test_get_all_meta(self, meta_store, mock_redis):
        """Test reading all metadata of a coupon."""
        mock_redis.hgetall.return_value = {ALLOWED_PREFIX + "editor": "yes"}

        meta = await meta_store.get_all_meta("coupon-1")

        assert meta == {ALLOWED_PREFIX + "editor": "yes"}
        mock_redis.hgetall.assert_called_once_with("test_meta:coupon-1")

    @pytest.mark.asyncio
    async def test_update_and_delete_meta(self, meta_store, mock_redis):
        """Test single key writes go to the coupon hash."""
        await meta_store.update_meta("coupon-1", "k", "v")
        await meta_store.delete_meta("coupon-1", "k")

        mock_redis.hset.assert_called_once_with("test_meta:coupon-1", "k", "v")
        mock_redis.hdel.assert_called_once_with("test_meta:coupon-1", "k")

    @pytest.mark.asyncio
    async def test_replace_meta_uses_transaction(self, meta_store, mock_redis):
        """Test replacing metadata runs in one pipeline."""
        pipe = MagicMock()
        pipe.__aenter__.return_value = pipe
        pipe.execute = AsyncMock(return_value=[1, 1])
        mock_redis.pipeline = MagicMock(return_value=pipe)

        await meta_store.replace_meta("coupon-1", ["a", "b"], {"c": "yes"})

        mock_redis.pipeline.assert_called_once_with(transaction=True)
        pipe.hdel.assert_called_once_with("test_meta:coupon-1", "a", "b")
        pipe.hset.assert_called_once_with("test_meta:coupon-1", mapping={"c": "yes"})
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_replace_meta_noop(self, meta_store, mock_redis):
        """Test an empty replacement does not touch Redis."""
        mock_redis.pipeline = MagicMock()

        await meta_store.replace_meta("coupon-1", [], {})

        mock_redis.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_redis_error_becomes_store_error(self, meta_store, mock_redis):
        """Test Redis failures surface as StoreError."""
        mock_redis.hgetall.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(StoreError):
            await meta_store.get_all_meta("coupon-1")

    @pytest.mark.asyncio
    async def test_health_check(self, meta_store, mock_redis):
        """Test health check pings Redis."""
        assert await meta_store.health_check() is True

        mock_redis.ping.side_effect = RedisConnectionError("down")
        assert await meta_store.health_check() is False

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, meta_store, mock_redis):
        """Test stopping closes the connection."""
        await meta_store.stop()

        mock_redis.aclose.assert_awaited_once()
        assert meta_store.redis is None
