"""
Shared configuration management for the Coupon Role Restriction service.
"""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SITE_ROLES: Dict[str, str] = {
    "administrator": "Administrator",
    "editor": "Editor",
    "author": "Author",
    "contributor": "Contributor",
    "subscriber": "Subscriber",
    "customer": "Customer",
    "shop_manager": "Shop manager",
}

# Placeholder only; deployments outside local must set COUPON_ROLES_NONCE_SECRET.
DEFAULT_NONCE_SECRET = "change-me"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden with a ``COUPON_ROLES_`` prefixed
    environment variable (``COUPON_ROLES_LOG_LEVEL=debug``). Mapping fields
    such as ``site_roles`` are read as JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix="COUPON_ROLES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Restriction metadata storage
    store_backend: str = Field(default="memory", description="memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="coupon_meta:")

    # Role source
    site_roles: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SITE_ROLES))
    roles_file: Optional[str] = Field(default=None)
    guest_role_name: str = Field(default="Guest")

    # Host environment
    commerce_active: bool = Field(default=True)

    # Customer-facing denial message
    denial_message: str = Field(default="Sorry, this coupon is not valid for your account type.")

    # Admin form nonces
    nonce_secret: str = Field(default=DEFAULT_NONCE_SECRET)
    nonce_ttl_seconds: int = Field(default=86400)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
