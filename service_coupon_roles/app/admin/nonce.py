"""
Signed nonces guarding the admin save action.
"""

import time

import jwt

from shared.errors import InvalidNonceError


SAVE_ROLES_ACTION = "save_coupon_roles"


class NonceManager:
    """Issues and verifies short-lived tokens bound to an action and coupon."""

    def __init__(self, secret: str, ttl_seconds: int = 86400, algorithm: str = "HS256"):
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self.algorithm = algorithm

    def create(self, action: str, subject: str) -> str:
        now = int(time.time())
        payload = {
            "act": action,
            "sub": str(subject),
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str, action: str, subject: str) -> None:
        """Raise ``InvalidNonceError`` unless ``token`` was issued for this action and subject."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise InvalidNonceError("Nonce has expired")
        except jwt.InvalidTokenError:
            raise InvalidNonceError()

        if claims.get("act") != action or claims.get("sub") != str(subject):
            raise InvalidNonceError("Nonce was not issued for this action")
