import base64
import time
from typing import Any

from authlib.jose import jwt


def oct_jwk(key: bytes, kid: str) -> dict[str, str]:
    return {
        "kty": "oct",
        "k": base64.urlsafe_b64encode(key).rstrip(b"=").decode("ascii"),
        "alg": "HS256",
        "kid": kid,
    }


def encode_token(
    secret: str | bytes,
    claims: dict[str, Any],
    *,
    kid: str | None = None,
    algorithm: str = "HS256",
) -> str:
    header: dict[str, Any] = {"alg": algorithm, "typ": "JWT"}
    if kid:
        header["kid"] = kid
    token = jwt.encode(header, claims, secret)
    return token.decode() if isinstance(token, bytes) else token


def provider_claims(
    issuer: str,
    audience: str,
    subject: str,
    email: str | None = None,
    lifetime: int = 3600,
    **extra: Any,
) -> dict[str, Any]:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": issuer,
        "aud": audience,
        "sub": subject,
        "iat": now,
        "exp": now + lifetime,
    }
    if email:
        claims["email"] = email
        claims["email_verified"] = True
    claims.update(extra)
    return claims
