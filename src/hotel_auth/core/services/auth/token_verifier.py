"""Dual-path bearer token verification."""

from collections.abc import Callable, Iterable

from loguru import logger

from src.hotel_auth.core.errors import (
    AuthError,
    AuthErrorReason,
    AuthorizationError,
    ExternalProviderError,
    InternalError,
)
from src.hotel_auth.core.models.identity import Identity, VerificationPath
from src.hotel_auth.core.services.identity.provider import IdentityProviderClient
from src.hotel_auth.core.services.jwt.jwt_verify import JwtVerificationService
from src.hotel_auth.core.storage.credential_store import CredentialStore
from src.hotel_auth.entities.core.user.entity import Role, User


def _ensure_resolvable(user: User | None) -> User:
    if user is None or user.is_deleted:
        raise AuthError(AuthErrorReason.NOT_FOUND, "User not found")
    if not user.is_active:
        raise AuthError(AuthErrorReason.INACTIVE, "User account is inactive")
    return user


class TokenVerifier:
    """Resolves a bearer credential to the canonical local identity.

    The local signature is tried first; the external provider is only
    consulted when one was configured at startup. Whichever path verifies the
    token, role and every other identity field come from the stored user.
    """

    def __init__(
        self,
        store: CredentialStore,
        jwt_verify_service: JwtVerificationService,
        identity_provider: IdentityProviderClient | None = None,
    ) -> None:
        self._store = store
        self._jwt_verify = jwt_verify_service
        self._provider = identity_provider

    async def verify(self, raw_token: str) -> Identity:
        """Resolve ``raw_token`` or raise AuthError."""
        try:
            claims = self._jwt_verify.verify_generated_jwt(raw_token)
        except AuthError as local_exc:
            logger.debug(f"Local verification failed: {local_exc.message}")
        except InternalError as local_exc:
            logger.bind(error=local_exc.message).warning(
                "Local verification unavailable; trying external path"
            )
        else:
            user = _ensure_resolvable(self._store.find_by_id(claims.subject))
            return Identity.from_user(user, VerificationPath.LOCAL)

        if self._provider is None:
            raise AuthError(AuthErrorReason.INVALID)

        try:
            external = await self._provider.verify_token(raw_token)
        except (AuthError, ExternalProviderError) as exc:
            logger.bind(error=exc.message).debug("External verification failed")
            raise AuthError(AuthErrorReason.INVALID) from exc

        user = self._store.find_by_external_subject(external.subject_id)
        if user is None:
            logger.bind(subject_id=external.subject_id).info(
                "Verified external token has no linked local user"
            )
            raise AuthError(
                AuthErrorReason.NOT_FOUND, "No local user linked to this identity"
            )
        return Identity.from_user(_ensure_resolvable(user), VerificationPath.EXTERNAL)

    @staticmethod
    def require_role(allowed: Iterable[Role]) -> Callable[[Identity], Identity]:
        """Build a capability check applied after ``verify``."""
        allowed_roles = frozenset(allowed)

        def check(identity: Identity) -> Identity:
            if identity.role not in allowed_roles:
                raise AuthorizationError(
                    f"Role '{identity.role.value}' is not permitted here"
                )
            return identity

        return check

    @classmethod
    def require_min_role(cls, minimum: Role) -> Callable[[Identity], Identity]:
        return cls.require_role(Role.at_or_above(minimum))
