"""
Role restriction evaluation for coupons.

A coupon carries two independent role sets. The requester must be in the
allowed set when one is configured, and must not be in the excluded set
when one is configured. Both checks compare whole sets, so the order in
which roles are listed never changes the decision.

``evaluate`` is a pure function: it performs no I/O and keeps no state,
and may be called concurrently from any number of requests.
"""

from typing import AbstractSet

from .models import (
    GUEST, RoleSet, RestrictionSettings, Requester, Decision,
    DecisionDiagnostics, DecisionOutcome, PolicyPass
)


def requester_matches(requester: Requester, role_ids: AbstractSet[str]) -> bool:
    """Check whether a requester matches any of ``role_ids``.

    A guest only matches through an explicit ``GUEST`` entry; an
    authenticated requester matches when its roles intersect ``role_ids``.
    """
    if requester.is_guest:
        return GUEST in role_ids
    return not requester.roles.isdisjoint(role_ids)


def build_diagnostics(
    settings: RestrictionSettings,
    requester: Requester,
    roles: RoleSet
) -> DecisionDiagnostics:
    """Describe the inputs of an evaluation in registry order."""
    base = settings.allowed if settings.allowed else frozenset(roles)
    return DecisionDiagnostics(
        allowed_roles=roles.order(settings.allowed),
        excluded_roles=roles.order(settings.excluded),
        admitted_roles=roles.order(base - settings.excluded),
        is_guest=requester.is_guest,
        requester_roles=roles.order(requester.roles),
    )


def evaluate(settings: RestrictionSettings, requester: Requester, roles: RoleSet) -> Decision:
    """Decide whether ``requester`` may use a coupon restricted by ``settings``."""
    diagnostics = build_diagnostics(settings, requester, roles)

    # Allow-pass: an empty allowed set admits everyone.
    if settings.allowed and not requester_matches(requester, settings.allowed):
        return Decision(
            outcome=DecisionOutcome.DENY,
            reason="Requester has none of the allowed roles",
            diagnostics=diagnostics,
            failed_pass=PolicyPass.ALLOW,
        )

    # Exclude-pass: runs even when the allow-pass was vacuous.
    if settings.excluded and requester_matches(requester, settings.excluded):
        return Decision(
            outcome=DecisionOutcome.DENY,
            reason="Requester has an excluded role",
            diagnostics=diagnostics,
            failed_pass=PolicyPass.EXCLUDE,
        )

    if settings.is_unrestricted:
        reason = "Coupon has no role restrictions"
    else:
        reason = "Requester satisfies the role restrictions"

    return Decision(
        outcome=DecisionOutcome.ADMIT,
        reason=reason,
        diagnostics=diagnostics,
    )
