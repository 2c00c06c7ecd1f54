"""
Bearer Token Verification
Extracts tenant_id and role from JWTs issued by the external auth service
"""
from typing import Any, Dict, Optional

import jwt

from dialer.core.config import Settings


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from "Bearer <token>", or None if the header is malformed."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Verify and decode a token issued by the auth service.

    Raises:
        jwt.InvalidTokenError: Bad signature, expired, or no secret configured
    """
    if not settings.jwt_secret:
        raise jwt.InvalidTokenError("JWT_SECRET is not configured")
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def tenant_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    return claims.get("tenant_id") or (claims.get("user_metadata") or {}).get("tenant_id")
