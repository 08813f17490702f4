"""
Coupon role restriction service.
"""

from typing import Dict, Optional

from fastapi import HTTPException

from shared.base_service import BaseService
from shared.config import ServiceConfig, DEFAULT_NONCE_SECRET
from shared.errors import (
    AccessLayerException, ConfigurationConflictError, MissingDependencyError, ValidationError
)

from .rules.models import (
    Coupon, RestrictionSettings, RoleSet, RoleEntry, RoleListResponse,
    CouponValidationRequest, CouponValidationResponse, DecisionOutcome,
    RestrictionSettingsResponse, RestrictionSettingsUpdateRequest
)
from .roles.registry import RoleRegistry
from .roles.sources import RoleSource, SettingsRoleSource
from .persistence.meta_store import MetaStore, InMemoryMetaStore, RedisMetaStore
from .persistence.restriction_store import RestrictionStore
from .validation.coupon_validator import CouponRoleValidator
from .admin.nonce import NonceManager, SAVE_ROLES_ACTION


class CouponRolesService(BaseService):
    """Coupon role restriction service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        meta_store: Optional[MetaStore] = None,
        role_source: Optional[RoleSource] = None
    ):
        super().__init__("coupon_roles", 8020, config)

        self.role_source = role_source or SettingsRoleSource(
            self.config.site_roles,
            self.config.roles_file
        )
        self.registry = RoleRegistry(self.role_source, self.config.guest_role_name)
        self.meta_store = meta_store or self._create_meta_store()
        self.restriction_store = RestrictionStore(self.meta_store)
        self.nonces = NonceManager(self.config.nonce_secret, self.config.nonce_ttl_seconds)
        self.validator = CouponRoleValidator(
            self.registry,
            self.restriction_store,
            denial_message=self.config.denial_message,
            metrics=self.metrics
        )

        self._setup_role_routes()
        if self._check_setup():
            self._setup_coupon_routes()

    def _create_meta_store(self) -> MetaStore:
        backend = self.config.store_backend.lower()
        if backend == "redis":
            return RedisMetaStore(self.config.redis_url, self.config.redis_key_prefix)
        if backend == "memory":
            return InMemoryMetaStore()
        raise ValidationError(
            f"Unknown store backend '{self.config.store_backend}'",
            {"supported": ["memory", "redis"]}
        )

    def _check_setup(self) -> bool:
        """Refuse to register coupon hooks when the host is misconfigured."""
        if not self.config.commerce_active:
            error = MissingDependencyError(
                "commerce",
                "Commerce extension is not active; coupon role restrictions are disabled"
            )
            self.logger.error("Missing dependency", dependency=error.dependency)
            self.setup_errors.append(error)
            return False

        conflicts = self.registry.find_conflicts()
        if conflicts:
            error = ConfigurationConflictError(conflicts)
            self.logger.warning(
                "Guest role conflict; coupon role restrictions are disabled",
                conflicting_roles=conflicts
            )
            self.setup_errors.append(error)
            return False

        return True

    @staticmethod
    def _role_entries(roles: RoleSet):
        return [RoleEntry(id=role_id, name=name) for role_id, name in roles.items()]

    def _setup_role_routes(self):
        """Set up routes available in every state."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "coupon_roles",
                "message": "Coupon Role Restriction Service",
                "version": "1.0.0",
                "restrictions_active": not self.setup_errors
            }

        @self.app.get("/roles", response_model=RoleListResponse)
        async def list_roles():
            """List the roles coupons can be restricted to, guest first."""
            roles = self.registry.list_roles()
            return RoleListResponse(roles=self._role_entries(roles), total=len(roles))

    def _setup_coupon_routes(self):
        """Set up coupon restriction routes."""

        @self.app.get("/coupons/{coupon_id}/roles", response_model=RestrictionSettingsResponse)
        async def get_coupon_roles(coupon_id: str):
            """Admin form data for a coupon's role restrictions."""
            roles = self.registry.list_roles()
            settings = await self.restriction_store.load_restriction_settings(coupon_id, roles)
            return self._settings_response(coupon_id, settings, roles)

        @self.app.put("/coupons/{coupon_id}/roles", response_model=RestrictionSettingsResponse)
        async def save_coupon_roles(coupon_id: str, request: RestrictionSettingsUpdateRequest):
            """Save a coupon's role restrictions."""
            self.nonces.verify(request.nonce, SAVE_ROLES_ACTION, coupon_id)

            roles = self.registry.list_roles()
            settings = RestrictionSettings(
                allowed=frozenset(request.allowed_roles),
                excluded=frozenset(request.excluded_roles)
            )
            await self.restriction_store.save_restriction_settings(coupon_id, settings, roles)
            self.metrics.increment_counter("restriction_settings_saved_total")

            return self._settings_response(coupon_id, settings, roles)

        @self.app.post("/coupons/validate", response_model=CouponValidationResponse)
        async def validate_coupon(request: CouponValidationRequest):
            """Apply a coupon's role restrictions to a requester."""
            coupon = Coupon(coupon_id=request.coupon_id, code=request.code)
            requester = request.requester.to_requester()

            try:
                valid = await self.validator.validate_coupon(request.valid, coupon, requester)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Error validating coupon", coupon_id=coupon.coupon_id, error=str(e))
                raise HTTPException(status_code=500, detail="Internal server error")

            if not request.valid:
                return CouponValidationResponse(valid=valid, reason="Rejected by earlier checks")

            return CouponValidationResponse(
                valid=valid,
                outcome=DecisionOutcome.ADMIT,
                reason="Requester satisfies the coupon's role restrictions"
            )

    def _settings_response(
        self,
        coupon_id: str,
        settings: RestrictionSettings,
        roles: RoleSet
    ) -> RestrictionSettingsResponse:
        return RestrictionSettingsResponse(
            coupon_id=coupon_id,
            roles=self._role_entries(roles),
            allowed_roles=list(roles.order(settings.allowed)),
            excluded_roles=list(roles.order(settings.excluded)),
            nonce=self.nonces.create(SAVE_ROLES_ACTION, coupon_id)
        )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check coupon role service dependencies."""
        dependencies = {}

        health_check = getattr(self.meta_store, "health_check", None)
        if health_check is not None:
            try:
                dependencies["store"] = "ok" if await health_check() else "error"
            except Exception:
                dependencies["store"] = "error"

        return dependencies

    async def start(self):
        """Start coupon role service components."""
        if self.config.nonce_secret == DEFAULT_NONCE_SECRET and self.config.env != "local":
            self.logger.warning(
                "Default nonce secret in use; admin save nonces can be forged",
                env=self.config.env
            )

        if isinstance(self.meta_store, RedisMetaStore):
            await self.meta_store.start()
        self.logger.info("Coupon role service started", restrictions_active=not self.setup_errors)

    async def stop(self):
        """Stop coupon role service components."""
        if isinstance(self.meta_store, RedisMetaStore):
            await self.meta_store.stop()
        self.logger.info("Coupon role service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create coupon role service application."""
    service = CouponRolesService(config=config)
    return service.app


if __name__ == "__main__":
    service = CouponRolesService()
    service.run()
