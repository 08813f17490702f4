"""
Unit tests for the coupon validation hook.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from shared.errors import ConfigurationConflictError, CouponRoleRestrictedError
from shared.metrics import MetricsCollector
from service_coupon_roles.app.validation.coupon_validator import (
    CouponRoleValidator, DEFAULT_DENIAL_MESSAGE
)
from service_coupon_roles.app.roles.registry import RoleRegistry
from service_coupon_roles.app.roles.sources import SettingsRoleSource
from service_coupon_roles.app.persistence.meta_store import InMemoryMetaStore
from service_coupon_roles.app.persistence.restriction_store import RestrictionStore
from service_coupon_roles.app.rules.models import (
    GUEST, Coupon, Requester, RestrictionSettings, DecisionOutcome, PolicyPass
)


SITE_ROLES = {"editor": "Editor", "subscriber": "Subscriber", "customer": "Customer"}


class TestCouponRoleValidator:
    """Test cases for CouponRoleValidator."""

    @pytest.fixture
    def registry(self):
        """Create role registry."""
        return RoleRegistry(SettingsRoleSource(SITE_ROLES))

    @pytest.fixture
    def store(self):
        """Create restriction store."""
        return RestrictionStore(InMemoryMetaStore())

    @pytest.fixture
    def metrics(self):
        """Create metrics collector."""
        return MetricsCollector("coupon_roles")

    @pytest.fixture
    def validator(self, registry, store, metrics):
        """Create validator."""
        return CouponRoleValidator(registry, store, metrics=metrics)

    @pytest.fixture
    def coupon(self):
        """Create coupon."""
        return Coupon(coupon_id="coupon-1", code="SPRING10")

    async def _restrict(self, store, registry, **settings):
        await store.save_restriction_settings(
            "coupon-1", RestrictionSettings(**settings), registry.list_roles()
        )

    @pytest.mark.asyncio
    async def test_unrestricted_coupon_is_valid(self, validator, coupon):
        """Test a coupon without restrictions stays valid."""
        valid = await validator.validate_coupon(True, coupon, Requester.authenticated(["editor"]))

        assert valid is True

    @pytest.mark.asyncio
    async def test_earlier_rejection_is_kept(self, validator, store, registry, coupon):
        """Test an already invalid coupon is returned untouched without evaluation."""
        validator.store = MagicMock()
        validator.store.load_restriction_settings = AsyncMock()

        valid = await validator.validate_coupon(False, coupon, Requester.guest())

        assert valid is False
        validator.store.load_restriction_settings.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_role_is_valid(self, validator, store, registry, coupon):
        """Test a requester with an allowed role passes."""
        await self._restrict(store, registry, allowed={"subscriber"})

        valid = await validator.validate_coupon(True, coupon, Requester.authenticated(["subscriber"]))

        assert valid is True

    @pytest.mark.asyncio
    async def test_denied_requester_raises(self, validator, store, registry, coupon):
        """Test a denied requester raises with the default message."""
        await self._restrict(store, registry, allowed={"subscriber"})

        with pytest.raises(CouponRoleRestrictedError) as exc_info:
            await validator.validate_coupon(True, coupon, Requester.authenticated(["editor"]))

        assert exc_info.value.message == DEFAULT_DENIAL_MESSAGE
        assert exc_info.value.code == "COUPON_ROLE_RESTRICTED"
        assert exc_info.value.details == {"coupon_code": "SPRING10"}

    @pytest.mark.asyncio
    async def test_guest_denied_when_guest_excluded(self, validator, store, registry, coupon):
        """Test guests are refused when the guest role is excluded."""
        await self._restrict(store, registry, excluded={GUEST})

        with pytest.raises(CouponRoleRestrictedError):
            await validator.validate_coupon(True, coupon, Requester.guest())

    @pytest.mark.asyncio
    async def test_message_filters_apply_in_order(self, validator, store, registry, coupon):
        """Test denial message filters can rewrite the message."""
        await self._restrict(store, registry, excluded={"editor"})
        seen = []

        def add_code(message, filtered_coupon, decision):
            seen.append(decision.failed_pass)
            return f"{message} ({filtered_coupon.code})"

        validator.add_message_filter(add_code)
        validator.add_message_filter(lambda message, c, d: message.upper())

        with pytest.raises(CouponRoleRestrictedError) as exc_info:
            await validator.validate_coupon(True, coupon, Requester.authenticated(["editor"]))

        assert exc_info.value.message == f"{DEFAULT_DENIAL_MESSAGE} (SPRING10)".upper()
        assert seen == [PolicyPass.EXCLUDE]

    @pytest.mark.asyncio
    async def test_custom_denial_message(self, registry, store, coupon):
        """Test the configured denial message is used."""
        validator = CouponRoleValidator(registry, store, denial_message="Members only.")
        await self._restrict(store, registry, allowed={"customer"})

        with pytest.raises(CouponRoleRestrictedError) as exc_info:
            await validator.validate_coupon(True, coupon, Requester.guest())

        assert exc_info.value.message == "Members only."

    @pytest.mark.asyncio
    async def test_check_returns_decision(self, validator, store, registry, coupon):
        """Test check exposes the decision without raising."""
        await self._restrict(store, registry, allowed={"customer"}, excluded={"customer"})

        decision = await validator.check(coupon, Requester.authenticated(["customer"]))

        assert decision.outcome == DecisionOutcome.DENY
        assert decision.failed_pass == PolicyPass.EXCLUDE
        assert decision.diagnostics.admitted_roles == ()

    @pytest.mark.asyncio
    async def test_check_records_metrics(self, validator, metrics, coupon):
        """Test decisions are counted by outcome."""
        await validator.check(coupon, Requester.guest())

        value = metrics.registry.get_sample_value(
            "coupon_role_decisions_total",
            {"outcome": "admit", "failed_pass": "none"}
        )
        assert value == 1.0

    @pytest.mark.asyncio
    async def test_conflict_refuses_evaluation(self, store, coupon):
        """Test a guest role conflict stops validation."""
        registry = RoleRegistry(SettingsRoleSource({GUEST: "Site guest", "editor": "Editor"}))
        validator = CouponRoleValidator(registry, store)

        with pytest.raises(ConfigurationConflictError):
            await validator.validate_coupon(True, coupon, Requester.guest())

    @pytest.mark.asyncio
    async def test_settings_loaded_once_per_validation(self, validator, coupon):
        """Test the store is read once per validation call."""
        validator.store = MagicMock()
        validator.store.load_restriction_settings = AsyncMock(return_value=RestrictionSettings())

        await validator.validate_coupon(True, coupon, Requester.authenticated(["editor"]))

        validator.store.load_restriction_settings.assert_awaited_once()
