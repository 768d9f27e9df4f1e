"""
JWT verification helpers for callers of the provisioning endpoints.

Why: Supabase signs the access tokens of signed-in users with the project's
JWT secret (HS256). Verifying them here keeps cryptographic validation out of
the web adapter so it can be unit tested independently.

Security: Validates signature, audience and expiration. Never log tokens.
"""
from __future__ import annotations

from typing import Dict
import time

from jose import jwt
from jose.exceptions import JOSEError


class AccessTokenVerificationError(Exception):
    """Raised when the bearer token fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


MAX_CLOCK_SKEW_SECONDS = 5  # Allow minimal skew between servers
EXPECTED_AUDIENCE = "authenticated"


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    scheme, _, token = (authorization or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AccessTokenVerificationError("missing_token")
    return token.strip()


def verify_access_token(*, token: str, secret: str) -> Dict[str, object]:
    """Validate a Supabase access token and return its claims.

    Raises
    ------
    AccessTokenVerificationError:
        When the token is invalid (signature, audience, expiry).
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=EXPECTED_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_aud": True,
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except JOSEError as exc:
        raise AccessTokenVerificationError("invalid_token") from exc

    _validate_temporal_claims(claims)
    return claims


def _validate_temporal_claims(claims: Dict[str, object]) -> None:
    now = time.time()
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise AccessTokenVerificationError("invalid_token")
    if exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise AccessTokenVerificationError("token_expired")

    nbf = claims.get("nbf")
    if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
        raise AccessTokenVerificationError("invalid_token")


__all__ = ["AccessTokenVerificationError", "bearer_token", "verify_access_token"]
