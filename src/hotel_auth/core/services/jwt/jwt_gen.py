import time
from typing import Any

from authlib.common.security import generate_token
from authlib.jose import JoseError, jwt
from loguru import logger

from src.hotel_auth.core.errors import InternalError
from src.hotel_auth.entities.core.user.entity import User
from src.hotel_auth.runtime.config.config_data import ConfigData
from src.hotel_auth.runtime.context import get_config


class JwtGeneratorService:
    """Local signing authority for bearer tokens."""

    def generate_jwt(
        self,
        subject: str,
        claims: dict[str, Any] | None = None,
        expires_in_seconds: int | None = None,
        issuer: str | None = None,
        audience: str | list[str] | None = None,
        algorithm: str = "HS256",
        include_jti: bool = True,
        secret: str | None = None,
    ) -> str:
        """Generate a signed JWT using authlib.

        Args:
            subject: Subject (sub) claim - the local user id
            claims: Additional claims to include in the token
            expires_in_seconds: Token lifetime (defaults to jwt.access_token_ttl_seconds)
            issuer: Issuer (iss) claim (defaults to jwt.gen_issuer)
            audience: Audience (aud) claim (defaults to jwt.audiences)
            algorithm: Signing algorithm (default: HS256)
            include_jti: Whether to include a unique JWT ID claim
            secret: Signing secret (defaults to app.session_signing_secret)

        Returns:
            Signed JWT token string

        Raises:
            InternalError: If the signing configuration is missing or invalid
        """
        config: ConfigData = get_config()

        issuer = issuer or config.jwt.gen_issuer
        secret = secret or config.app.session_signing_secret
        if not secret:
            raise InternalError("JWT signing secret not configured")

        if algorithm not in config.jwt.allowed_algorithms:
            logger.debug(
                f"Attempted to use disallowed algorithm: {algorithm}, only {config.jwt.allowed_algorithms} are allowed"
            )
            raise InternalError(f"Algorithm {algorithm} not allowed")

        if expires_in_seconds is None:
            expires_in_seconds = config.jwt.access_token_ttl_seconds

        now = int(time.time())
        aud = audience or config.jwt.audiences or ["hotel-api"]

        payload: dict[str, Any] = {
            "iss": issuer,
            "sub": subject,
            "aud": aud,
            "exp": now + expires_in_seconds,
            "iat": now,
            "nbf": now,
        }
        if include_jti:
            payload["jti"] = generate_token(16)

        if claims:
            payload.update(
                {
                    k: v
                    for k, v in claims.items()
                    if k not in {"iss", "sub", "aud", "exp", "iat", "nbf", "jti"}
                }
            )

        try:
            token = jwt.encode({"alg": algorithm, "typ": "JWT"}, payload, secret)
        except JoseError as e:
            raise InternalError(f"JWT encoding failed: {e}") from e

        # authlib returns bytes
        return token.decode() if isinstance(token, bytes) else token

    def generate_access_token(self, user: User, **extra_claims: Any) -> str:
        """Issue the local access token handed back by registration and login.

        Only the user id and email are embedded; role is read from the stored
        user at verification time.
        """
        claims: dict[str, Any] = {"email": user.email}
        claims.update(extra_claims)
        return self.generate_jwt(subject=user.id, claims=claims)
