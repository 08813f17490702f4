"""
Role sources for the role registry.
"""

from typing import Dict, Mapping, Optional, Protocol
from pathlib import Path

import yaml

from shared.logging import get_logger


class RoleSource(Protocol):
    """Read access to the site's role configuration."""

    def get_names(self) -> Mapping[str, str]:
        """Return the current site role id -> display name mapping."""
        ...


class SettingsRoleSource:
    """Site roles from configuration, optionally replaced by a YAML file.

    The roles file is re-read on every call so that role edits apply to
    the next evaluation without a restart. It may either be a plain mapping
    or nest the mapping under a ``roles`` key::

        roles:
          subscriber: Subscriber
          wholesale: Wholesale customer

    An empty mapping means the site has no roles besides the guest. If the
    file cannot be read or is malformed the configured roles are used and
    the problem is logged.
    """

    def __init__(self, site_roles: Mapping[str, str], roles_file: Optional[str] = None):
        self.site_roles: Dict[str, str] = dict(site_roles)
        self.roles_file = Path(roles_file) if roles_file else None
        self.logger = get_logger("coupon_roles.roles.source")

    def get_names(self) -> Mapping[str, str]:
        if self.roles_file is None:
            return dict(self.site_roles)

        try:
            with open(self.roles_file, "r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as e:
            self.logger.error("Failed to read roles file", path=str(self.roles_file), error=str(e))
            return dict(self.site_roles)

        if isinstance(data, dict) and isinstance(data.get("roles"), dict):
            data = data["roles"]

        if not isinstance(data, dict):
            self.logger.error("Roles file does not contain a role mapping", path=str(self.roles_file))
            return dict(self.site_roles)

        roles: Dict[str, str] = {}
        for role_id, name in data.items():
            # Display names may be omitted; fall back to the id.
            roles[str(role_id)] = str(name) if name is not None else str(role_id)
        return roles
