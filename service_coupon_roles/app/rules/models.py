"""
Data models for coupon role restriction.
"""

from typing import Dict, Any, Optional, List, Iterable, Iterator, Mapping, FrozenSet, Tuple
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field, model_validator


# Reserved role id for requesters without an authenticated identity.
GUEST = "guest"


class DecisionOutcome(str, Enum):
    """Outcome of a role restriction evaluation."""
    ADMIT = "admit"
    DENY = "deny"


class PolicyPass(str, Enum):
    """Evaluation passes, in the order they run."""
    ALLOW = "allow"
    EXCLUDE = "exclude"


class RoleSet(Mapping[str, str]):
    """Ordered mapping of role id to display name.

    The synthetic ``GUEST`` entry always comes first, followed by the site
    roles in the order the role source listed them. Callers are expected to
    have rejected a site role named ``GUEST`` before building one (see
    ``RoleRegistry``); this class refuses it as well.
    """

    def __init__(self, site_roles: Mapping[str, str], guest_name: str = "Guest"):
        if GUEST in site_roles:
            raise ValueError(f"Site roles must not use the reserved id '{GUEST}'")
        self._names: Dict[str, str] = {GUEST: guest_name}
        self._names.update(site_roles)

    def __getitem__(self, role_id: str) -> str:
        return self._names[role_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"RoleSet({list(self._names)!r})"

    @property
    def site_role_ids(self) -> Tuple[str, ...]:
        return tuple(role_id for role_id in self._names if role_id != GUEST)

    def order(self, role_ids: Iterable[str]) -> Tuple[str, ...]:
        """Return ``role_ids`` in registry order; unknown ids trail, sorted."""
        wanted = set(role_ids)
        known = [role_id for role_id in self._names if role_id in wanted]
        unknown = sorted(wanted.difference(self._names))
        return tuple(known + unknown)

    def unknown(self, role_ids: Iterable[str]) -> List[str]:
        """Role ids that are not part of this set."""
        return sorted(set(role_ids).difference(self._names))


@dataclass(frozen=True)
class RestrictionSettings:
    """Per-coupon allow and exclude role sets.

    An empty ``allowed`` set means any role is admitted; an empty
    ``excluded`` set means nobody is excluded. A role may sit in both, in
    which case the exclusion wins.
    """
    allowed: FrozenSet[str] = frozenset()
    excluded: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "allowed", frozenset(self.allowed))
        object.__setattr__(self, "excluded", frozenset(self.excluded))

    @property
    def is_unrestricted(self) -> bool:
        return not self.allowed and not self.excluded


@dataclass(frozen=True)
class Requester:
    """Identity asking to use a coupon."""
    is_guest: bool = False
    roles: FrozenSet[str] = frozenset()
    user_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "roles", frozenset(self.roles))
        if self.is_guest and self.roles:
            raise ValueError("A guest requester cannot carry roles")
        if GUEST in self.roles:
            raise ValueError(f"The '{GUEST}' role is reserved for unauthenticated requesters")

    @classmethod
    def guest(cls) -> "Requester":
        return cls(is_guest=True)

    @classmethod
    def authenticated(cls, roles: Iterable[str], user_id: Optional[str] = None) -> "Requester":
        return cls(is_guest=False, roles=frozenset(roles), user_id=user_id)

    @property
    def match_roles(self) -> FrozenSet[str]:
        """Role ids this requester matches against, ``{GUEST}`` for guests."""
        return frozenset({GUEST}) if self.is_guest else self.roles


@dataclass(frozen=True)
class Coupon:
    """The protected entity handed to the validation hook."""
    coupon_id: str
    code: str


@dataclass(frozen=True)
class DecisionDiagnostics:
    """Context reported alongside a decision for logs and denial messages."""
    allowed_roles: Tuple[str, ...]
    excluded_roles: Tuple[str, ...]
    admitted_roles: Tuple[str, ...]
    is_guest: bool
    requester_roles: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed_roles": list(self.allowed_roles),
            "excluded_roles": list(self.excluded_roles),
            "admitted_roles": list(self.admitted_roles),
            "is_guest": self.is_guest,
            "requester_roles": list(self.requester_roles),
        }


@dataclass(frozen=True)
class Decision:
    """Result of evaluating a coupon's role restrictions."""
    outcome: DecisionOutcome
    reason: str
    diagnostics: DecisionDiagnostics
    failed_pass: Optional[PolicyPass] = None

    @property
    def admitted(self) -> bool:
        return self.outcome == DecisionOutcome.ADMIT

    @property
    def denied(self) -> bool:
        return self.outcome == DecisionOutcome.DENY


class RequesterModel(BaseModel):
    """Requester as received over HTTP."""
    is_guest: bool = Field(False, description="Whether the requester is not logged in")
    roles: List[str] = Field(default_factory=list, description="Roles of an authenticated requester")
    user_id: Optional[str] = Field(None, description="User ID, for logging only")

    @model_validator(mode="after")
    def _check_roles(self) -> "RequesterModel":
        if self.is_guest and self.roles:
            raise ValueError("A guest requester cannot carry roles")
        if GUEST in self.roles:
            raise ValueError(f"The '{GUEST}' role is reserved for unauthenticated requesters")
        return self

    def to_requester(self) -> Requester:
        if self.is_guest:
            return Requester.guest()
        return Requester.authenticated(self.roles, user_id=self.user_id)


class CouponValidationRequest(BaseModel):
    """Request model for coupon validation."""
    coupon_id: str = Field(..., description="Coupon ID")
    code: str = Field(..., description="Coupon code as entered by the customer")
    requester: RequesterModel = Field(default_factory=RequesterModel)
    valid: bool = Field(True, description="Validity decided by earlier checks")


class CouponValidationResponse(BaseModel):
    """Response model for coupon validation."""
    valid: bool
    outcome: Optional[DecisionOutcome] = Field(None, description="None when earlier checks already failed")
    reason: Optional[str] = None


class RoleEntry(BaseModel):
    id: str
    name: str


class RoleListResponse(BaseModel):
    """Response model for the role list."""
    roles: List[RoleEntry]
    total: int


class RestrictionSettingsResponse(BaseModel):
    """Admin form data for one coupon."""
    coupon_id: str
    roles: List[RoleEntry]
    allowed_roles: List[str]
    excluded_roles: List[str]
    nonce: str = Field(..., description="Token required to save these settings")


class RestrictionSettingsUpdateRequest(BaseModel):
    """Request model for saving a coupon's role restrictions."""
    allowed_roles: List[str] = Field(default_factory=list, description="Roles allowed to use the coupon")
    excluded_roles: List[str] = Field(default_factory=list, description="Roles excluded from the coupon")
    nonce: str = Field(..., description="Token issued with the admin form")
