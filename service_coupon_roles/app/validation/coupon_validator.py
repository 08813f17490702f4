"""
Purchase-time coupon validation hook.
"""

import time
from typing import Callable, List, Optional

from shared.logging import get_logger, set_validation_context
from shared.metrics import MetricsCollector
from shared.errors import CouponRoleRestrictedError
from ..rules.evaluator import evaluate
from ..rules.models import Coupon, Decision, Requester
from ..roles.registry import RoleRegistry
from ..persistence.restriction_store import RestrictionStore


DEFAULT_DENIAL_MESSAGE = "Sorry, this coupon is not valid for your account type."

MessageFilter = Callable[[str, Coupon, Decision], str]


class CouponRoleValidator:
    """Applies a coupon's role restrictions to a requester.

    The validator reads the role set and the coupon's settings once per
    call, hands them to ``evaluate`` and turns a denial into a
    ``CouponRoleRestrictedError`` with a customer-facing message. Message
    filters registered with ``add_message_filter`` run in registration order
    and may rewrite that message.
    """

    def __init__(
        self,
        registry: RoleRegistry,
        store: RestrictionStore,
        denial_message: str = DEFAULT_DENIAL_MESSAGE,
        metrics: Optional[MetricsCollector] = None
    ):
        self.registry = registry
        self.store = store
        self.denial_message = denial_message
        self.metrics = metrics
        self.logger = get_logger("coupon_roles.validator")
        self._message_filters: List[MessageFilter] = []

    def add_message_filter(self, message_filter: MessageFilter) -> None:
        """Register a filter for the denial message."""
        self._message_filters.append(message_filter)

    def build_denial_message(self, coupon: Coupon, decision: Decision) -> str:
        message = self.denial_message
        for message_filter in self._message_filters:
            message = message_filter(message, coupon, decision)
        return message

    async def check(self, coupon: Coupon, requester: Requester) -> Decision:
        """Evaluate ``requester`` against the coupon's stored restrictions."""
        start_time = time.time()

        roles = self.registry.list_roles()
        settings = await self.store.load_restriction_settings(coupon.coupon_id, roles)
        decision = evaluate(settings, requester, roles)

        if self.metrics:
            self.metrics.record_decision(
                decision.outcome.value,
                decision.failed_pass.value if decision.failed_pass else None
            )
            self.metrics.observe_histogram(
                "coupon_role_validation_duration_seconds",
                time.time() - start_time
            )

        self.logger.debug(
            "Coupon role restriction evaluated",
            coupon_id=coupon.coupon_id,
            outcome=decision.outcome.value,
            reason=decision.reason
        )

        return decision

    async def validate_coupon(self, valid: bool, coupon: Coupon, requester: Requester) -> bool:
        """Validation hook: keep an earlier rejection, otherwise apply role restrictions.

        Returns ``True`` when the requester is admitted and raises
        ``CouponRoleRestrictedError`` when denied.
        """
        if not valid:
            return valid

        set_validation_context(user_id=requester.user_id, coupon_code=coupon.code)

        decision = await self.check(coupon, requester)
        if decision.admitted:
            return True

        diagnostics = decision.diagnostics
        self.logger.info(
            "Coupon validation failed for user role",
            coupon_code=coupon.code,
            coupon_id=coupon.coupon_id,
            user_roles=", ".join(diagnostics.requester_roles),
            is_guest=diagnostics.is_guest,
            failed_pass=decision.failed_pass.value if decision.failed_pass else None,
            allowed_roles=list(diagnostics.allowed_roles),
            excluded_roles=list(diagnostics.excluded_roles),
            admitted_roles=list(diagnostics.admitted_roles)
        )

        raise CouponRoleRestrictedError(
            self.build_denial_message(coupon, decision),
            {"coupon_code": coupon.code}
        )
