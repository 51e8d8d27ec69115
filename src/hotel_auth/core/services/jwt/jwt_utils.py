"""Unverified inspection of compact JWTs and mapping of verified claims."""

import base64
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Final

from src.hotel_auth.core.errors import AuthError
from src.hotel_auth.core.models.token import TokenClaims

MAX_TOKEN_CHARS: Final = 4096
MAX_HEADER_BYTES: Final = 8 * 1024
MAX_PAYLOAD_BYTES: Final = 64 * 1024

# Three non-empty unpadded base64url segments
_COMPACT_JWT: Final = re.compile(r"^([A-Za-z0-9_-]+)\.([A-Za-z0-9_-]+)\.([A-Za-z0-9_-]+)$")

_REGISTERED: Final = ("exp", "iat", "nbf", "sub", "aud", "iss", "jti")


@dataclass(frozen=True)
class JwtPreview:
    header: dict[str, Any]
    claims: dict[str, Any]
    alg: str | None
    kid: str | None
    iss: str | None


def _decode_segment(segment: str, what: str, max_bytes: int) -> dict[str, Any]:
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except ValueError as exc:
        raise AuthError(message=f"Invalid base64url in {what}") from exc
    if len(raw) > max_bytes:
        raise AuthError(message=f"{what} too large")

    try:
        value = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise AuthError(message=f"Invalid JSON in {what}") from exc
    if not isinstance(value, dict):
        raise AuthError(message=f"{what} must be a JSON object")
    return value


def preview_jwt(token: str) -> JwtPreview:
    """Decode header and payload without verifying the signature.

    Used to pick the verification path and key before any cryptography runs.

    Raises:
        AuthError: if the token is not a well-formed compact JWT
    """
    if not token or len(token) > MAX_TOKEN_CHARS:
        raise AuthError(message="Invalid JWT size")
    match = _COMPACT_JWT.match(token)
    if match is None:
        raise AuthError(message="Invalid JWT format")

    header = _decode_segment(match.group(1), "JWT header", MAX_HEADER_BYTES)
    claims = _decode_segment(match.group(2), "JWT payload", MAX_PAYLOAD_BYTES)

    iss = claims.get("iss")
    return JwtPreview(
        header=header,
        claims=claims,
        alg=header.get("alg"),
        kid=header.get("kid"),
        iss=iss.rstrip("/") if isinstance(iss, str) and iss else None,
    )


def create_token_claims(token: str, claims: dict[str, Any]) -> TokenClaims:
    """Create TokenClaims from verified JWT claims.

    Registered and profile claims are mapped to fields; anything else stays in
    ``custom_claims``.
    """
    now = int(time.time())
    remaining = {k: v for k, v in claims.items() if k not in _REGISTERED}

    email = remaining.pop("email", None)
    email_verified = bool(remaining.pop("email_verified", False))
    name = remaining.pop("name", None)

    return TokenClaims(
        raw_token=token,
        issuer=(claims.get("iss") or "").rstrip("/"),
        subject=str(claims.get("sub", "")),
        audience=claims.get("aud", []),
        expires_at=int(claims.get("exp", now)),
        issued_at=int(claims.get("iat", now)),
        not_before=claims.get("nbf"),
        jti=claims.get("jti"),
        email=email,
        email_verified=email_verified,
        name=name,
        custom_claims=remaining,
    )
