"""Service fixtures for testing."""

from __future__ import annotations

from typing import Any

import pytest

from src.hotel_auth.core.errors import (
    AuthError,
    ExternalProviderError,
    ExternalProviderErrorKind,
    NotFoundError,
)
from src.hotel_auth.core.models.identity import ExternalIdentity
from src.hotel_auth.core.services import (
    IdentityProviderClient,
    JWKSCache,
    JWKSCacheInMemory,
    JwksService,
    JwtGeneratorService,
    JwtVerificationService,
)
from src.hotel_auth.core.services.auth import (
    OrphanReaper,
    RegistrationOrchestrator,
    TokenVerifier,
)
from src.hotel_auth.core.storage import InMemoryCredentialStore
from src.hotel_auth.entities.core.user import User


class FakeIdentityProvider(IdentityProviderClient):
    """In-process provider that records every call.

    Set ``create_error`` or ``delete_error`` to make the next calls fail.
    Tokens are opaque strings registered with ``issue_token``.
    """

    def __init__(self) -> None:
        self.identities: dict[str, str] = {}
        self.tokens: dict[str, ExternalIdentity] = {}
        self.create_calls: list[tuple[str, str | None, str | None]] = []
        self.deleted: list[str] = []
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.closed = False
        self._counter = 0

    async def create_identity(
        self, email: str, secret: str | None, display_name: str | None
    ) -> str:
        self.create_calls.append((email, secret, display_name))
        if self.create_error is not None:
            raise self.create_error
        if email.lower() in {e.lower() for e in self.identities.values()}:
            raise ExternalProviderError(ExternalProviderErrorKind.ALREADY_EXISTS)
        self._counter += 1
        subject_id = f"ext-subject-{self._counter}"
        self.identities[subject_id] = email
        return subject_id

    async def delete_identity(self, subject_id: str) -> None:
        self.deleted.append(subject_id)
        if self.delete_error is not None:
            raise self.delete_error
        self.identities.pop(subject_id, None)

    async def verify_token(self, token: str) -> ExternalIdentity:
        identity = self.tokens.get(token)
        if identity is None:
            raise AuthError(message="Unknown provider token")
        return identity

    async def aclose(self) -> None:
        self.closed = True

    def issue_token(
        self,
        subject_id: str,
        email: str | None,
        display_name: str | None = None,
        email_verified: bool = True,
    ) -> str:
        token = f"provider-token-{subject_id}"
        self.tokens[token] = ExternalIdentity(
            subject_id=subject_id,
            email=email,
            email_verified=email_verified,
            display_name=display_name,
        )
        return token


class FailingLinkStore(InMemoryCredentialStore):
    """Store whose conditional link update never matches."""

    def __init__(self) -> None:
        super().__init__()
        self.link_attempts: list[tuple[str, str]] = []

    def link_external(self, user_id: str, subject_id: str) -> User:
        self.link_attempts.append((user_id, subject_id))
        raise NotFoundError("User not found or already linked")


@pytest.fixture
def jwks_cache() -> JWKSCache:
    """Get a JWKS cache instance for testing."""
    return JWKSCacheInMemory()


@pytest.fixture
def jwks_service_fake(jwks_data: dict[str, Any]) -> JwksService:
    """Get a fake JWKS service instance for testing."""

    class MockJwksService(JwksService):
        def __init__(self) -> None:
            super().__init__(JWKSCacheInMemory())
            self.requested: list[str] = []

        async def fetch_jwks(self, jwks_uri: str) -> dict[str, Any]:
            self.requested.append(jwks_uri)
            return jwks_data

    return MockJwksService()


@pytest.fixture
def jwt_verify_service(jwks_service_fake: JwksService) -> JwtVerificationService:
    """Get a JWT verification service instance for testing."""
    return JwtVerificationService(jwks_service=jwks_service_fake)


@pytest.fixture
def jwt_generate_service() -> JwtGeneratorService:
    """Get a JWT generation service instance for testing."""
    return JwtGeneratorService()


@pytest.fixture
def fake_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def failing_link_store() -> FailingLinkStore:
    return FailingLinkStore()


@pytest.fixture
def orchestrator(
    memory_store: InMemoryCredentialStore,
    jwt_generate_service: JwtGeneratorService,
    fake_provider: FakeIdentityProvider,
) -> RegistrationOrchestrator:
    """Orchestrator with external identity enabled."""
    return RegistrationOrchestrator(memory_store, jwt_generate_service, fake_provider)


@pytest.fixture
def local_orchestrator(
    memory_store: InMemoryCredentialStore,
    jwt_generate_service: JwtGeneratorService,
) -> RegistrationOrchestrator:
    """Orchestrator with external identity disabled."""
    return RegistrationOrchestrator(memory_store, jwt_generate_service, None)


@pytest.fixture
def token_verifier(
    memory_store: InMemoryCredentialStore,
    jwt_verify_service: JwtVerificationService,
    fake_provider: FakeIdentityProvider,
) -> TokenVerifier:
    return TokenVerifier(memory_store, jwt_verify_service, fake_provider)


@pytest.fixture
def orphan_reaper(memory_store: InMemoryCredentialStore) -> OrphanReaper:
    return OrphanReaper(memory_store)


__all__ = [
    "FailingLinkStore",
    "FakeIdentityProvider",
    "failing_link_store",
    "fake_provider",
    "jwks_cache",
    "jwks_service_fake",
    "jwt_generate_service",
    "jwt_verify_service",
    "local_orchestrator",
    "orchestrator",
    "orphan_reaper",
    "token_verifier",
]
