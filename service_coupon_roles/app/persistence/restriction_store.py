"""
Restriction settings adapter over coupon metadata.

Each (coupon, role) pair is stored as two optional metadata entries::

    coupon_role_restrict_allowed_roles_<role_id>  = "yes"
    coupon_role_restrict_excluded_roles_<role_id> = "yes"

An absent entry, or any value other than ``"yes"``, means the role is not
selected.
"""

from typing import Dict, List

from shared.logging import get_logger
from shared.errors import ValidationError
from ..rules.models import RoleSet, RestrictionSettings
from .meta_store import MetaStore


ALLOWED_PREFIX = "coupon_role_restrict_allowed_roles_"
EXCLUDED_PREFIX = "coupon_role_restrict_excluded_roles_"
SELECTED_VALUE = "yes"


class RestrictionStore:
    """Loads and saves ``RestrictionSettings`` for coupons."""

    def __init__(self, meta_store: MetaStore):
        self.meta_store = meta_store
        self.logger = get_logger("coupon_roles.persistence.restrictions")

    async def load_restriction_settings(self, coupon_id: str, roles: RoleSet) -> RestrictionSettings:
        """Read a coupon's settings for every role of ``roles``.

        Entries for roles no longer present in the role set are ignored.
        """
        meta = await self.meta_store.get_all_meta(coupon_id)

        allowed = [
            role_id for role_id in roles
            if meta.get(ALLOWED_PREFIX + role_id) == SELECTED_VALUE
        ]
        excluded = [
            role_id for role_id in roles
            if meta.get(EXCLUDED_PREFIX + role_id) == SELECTED_VALUE
        ]

        return RestrictionSettings(allowed=frozenset(allowed), excluded=frozenset(excluded))

    async def save_restriction_settings(
        self,
        coupon_id: str,
        settings: RestrictionSettings,
        roles: RoleSet
    ) -> None:
        """Replace a coupon's settings for every role of ``roles``."""
        unknown = roles.unknown(settings.allowed | settings.excluded)
        if unknown:
            raise ValidationError("Unknown role(s) in restriction settings", {"unknown_roles": unknown})

        delete_keys: List[str] = []
        for role_id in roles:
            delete_keys.append(ALLOWED_PREFIX + role_id)
            delete_keys.append(EXCLUDED_PREFIX + role_id)

        values: Dict[str, str] = {}
        for role_id in settings.allowed:
            values[ALLOWED_PREFIX + role_id] = SELECTED_VALUE
        for role_id in settings.excluded:
            values[EXCLUDED_PREFIX + role_id] = SELECTED_VALUE

        await self.meta_store.replace_meta(coupon_id, delete_keys, values)

        self.logger.info(
            "Restriction settings saved",
            coupon_id=coupon_id,
            allowed_roles=list(roles.order(settings.allowed)),
            excluded_roles=list(roles.order(settings.excluded))
        )
