"""JWT verification service."""

from authlib.jose import JoseError, JsonWebKey, jwt
from loguru import logger

from src.hotel_auth.core.errors import AuthError, InternalError
from src.hotel_auth.core.models.token import TokenClaims
from src.hotel_auth.core.services.jwt.jwks import JwksService
from src.hotel_auth.core.services.jwt.jwt_utils import (
    JwtPreview,
    create_token_claims,
    preview_jwt,
)
from src.hotel_auth.runtime.config.config_data import IdentityProviderConfig
from src.hotel_auth.runtime.context import get_config


# ---------------------------- helpers ---------------------------------
def _as_list(v):
    return [v] if isinstance(v, str) else list(v or ())


def _decode_and_validate(token: str, key, claims_options: dict, leeway: int) -> dict:
    try:
        claims = jwt.decode(token, key, claims_options=claims_options)
        claims.validate(leeway=leeway)
    except (JoseError, ValueError) as exc:
        raise AuthError(message=f"JWT error: {exc}") from exc
    return dict(claims)


class JwtVerificationService:
    def __init__(self, jwks_service: JwksService):
        self._jwks_service = jwks_service

    def verify_generated_jwt(
        self, token: str, *, preview: JwtPreview | None = None
    ) -> TokenClaims:
        """Verify a token issued by the local signing authority.

        Pure computation, no network.

        Raises:
            AuthError: if the token is malformed, badly signed, expired, or
                was not issued by this service
            InternalError: if no signing secret is configured
        """
        cfg = get_config()
        pv = preview or preview_jwt(token)

        if pv.alg not in cfg.jwt.allowed_algorithms:
            raise AuthError(message="Disallowed JWT algorithm")

        secret = cfg.app.session_signing_secret
        if not secret:
            raise InternalError("JWT signing secret not configured")

        claims = _decode_and_validate(
            token,
            secret,
            {
                "iss": {"essential": True, "value": cfg.jwt.gen_issuer},
                "sub": {"essential": True},
                "exp": {"essential": True},
            },
            cfg.jwt.clock_skew,
        )

        expected_aud = set(cfg.jwt.audiences)
        if expected_aud and not expected_aud.intersection(_as_list(claims.get("aud"))):
            raise AuthError(message="Invalid audience")

        return create_token_claims(token, claims)

    async def verify_provider_jwt(
        self,
        token: str,
        provider: IdentityProviderConfig,
        *,
        preview: JwtPreview | None = None,
    ) -> TokenClaims:
        """Verify a token minted by the external identity provider.

        Signature is checked against the provider's JWKS, selected by kid.
        Issuer and audience must match the provider configuration exactly.

        Raises:
            AuthError: if the token does not verify
            ExternalProviderError: (unavailable) if the JWKS cannot be fetched
        """
        cfg = get_config()
        pv = preview or preview_jwt(token)

        if pv.alg not in provider.allowed_algorithms:
            raise AuthError(message="Disallowed JWT algorithm")

        expected_issuer = provider.issuer.rstrip("/")
        if pv.iss != expected_issuer:
            raise AuthError(message="Invalid issuer")

        jwks = await self._jwks_service.fetch_jwks(provider.jwks_uri)
        jwk_set = (
            {"keys": [k for k in jwks.get("keys", []) if k.get("kid") == pv.kid]}
            if pv.kid
            else jwks
        )
        if not jwk_set.get("keys"):
            raise AuthError(message=f"No JWK matches kid={pv.kid}")
        try:
            verification_key = JsonWebKey.import_key_set(jwk_set)
        except (JoseError, ValueError) as exc:
            raise AuthError(message=f"Unusable JWKS: {exc}") from exc

        logger.debug(
            f"Verifying provider JWT from issuer {expected_issuer} with audience {provider.audience}"
        )
        claims = _decode_and_validate(
            token,
            verification_key,
            {
                "iss": {"essential": True, "values": [expected_issuer, provider.issuer]},
                "aud": {"essential": True, "values": _as_list(provider.audience)},
                "sub": {"essential": True},
                "exp": {"essential": True},
            },
            cfg.jwt.clock_skew,
        )

        if not claims.get("sub"):
            raise AuthError(message="Missing sub claim")

        return create_token_claims(token, claims)
