"""
Shared error handling for the Coupon Role Restriction service.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for coupon role services."""

    status_code: int = 400
    # Policy outcomes set this to False to stay out of errors_total.
    counts_as_error: bool = True

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class InvalidNonceError(AccessLayerException):
    """Raised when an admin form nonce is missing, expired or forged."""

    status_code = 403

    def __init__(self, message: str = "Invalid or expired nonce", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_NONCE", message, details)


class ConfigurationConflictError(AccessLayerException):
    """The synthetic guest role collides with a site-defined role."""

    status_code = 500

    def __init__(self, conflicting_roles: List[str], message: Optional[str] = None):
        self.conflicting_roles = list(conflicting_roles)
        super().__init__(
            "CONFIGURATION_CONFLICT",
            message or (
                "Reserved guest role id collides with site role(s): "
                + ", ".join(self.conflicting_roles)
            ),
            {"conflicting_roles": self.conflicting_roles}
        )


class MissingDependencyError(AccessLayerException):
    """A required host subsystem is not available."""

    status_code = 503

    def __init__(self, dependency: str, message: Optional[str] = None):
        self.dependency = dependency
        super().__init__(
            "MISSING_DEPENDENCY",
            message or f"Required dependency '{dependency}' is not active",
            {"dependency": dependency}
        )


class CouponRoleRestrictedError(AccessLayerException):
    """A coupon was rejected because of the requester's role."""

    status_code = 403
    counts_as_error = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("COUPON_ROLE_RESTRICTED", message, details)


class StoreError(AccessLayerException):
    """Restriction metadata could not be read or written."""

    status_code = 503

    def __init__(self, message: str = "Restriction store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)
