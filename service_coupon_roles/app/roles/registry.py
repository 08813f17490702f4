"""
Role registry: site roles plus the synthetic guest role.
"""

from typing import List

from shared.logging import get_logger
from shared.errors import ConfigurationConflictError
from ..rules.models import GUEST, RoleSet
from .sources import RoleSource


class RoleRegistry:
    """Builds the ``RoleSet`` used by every evaluation.

    Roles are read from the source on each call and never cached, since the
    site's role configuration may change between requests.
    """

    def __init__(self, source: RoleSource, guest_name: str = "Guest"):
        self.source = source
        self.guest_name = guest_name
        self.logger = get_logger("coupon_roles.roles.registry")

    def find_conflicts(self) -> List[str]:
        """Site role ids that collide with the reserved guest id."""
        return [role_id for role_id in self.source.get_names() if role_id == GUEST]

    def list_roles(self) -> RoleSet:
        """Return the current role set, guest first.

        Raises ``ConfigurationConflictError`` when a site role uses the
        reserved guest id; evaluating in that state would be ambiguous.
        """
        site_roles = self.source.get_names()
        conflicts = [role_id for role_id in site_roles if role_id == GUEST]
        if conflicts:
            self.logger.warning(
                "Site role collides with reserved guest role",
                conflicting_roles=conflicts
            )
            raise ConfigurationConflictError(conflicts)

        return RoleSet(site_roles, guest_name=self.guest_name)
