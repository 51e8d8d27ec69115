"""FastAPI dependency implementations."""

from __future__ import annotations

from fastapi import Depends, Request

from src.hotel_auth.api.http.app_data import ApplicationDependencies
from src.hotel_auth.core.errors import AuthError, AuthErrorReason
from src.hotel_auth.core.models.identity import Identity
from src.hotel_auth.core.services.auth import (
    OrphanReaper,
    RegistrationOrchestrator,
    TokenVerifier,
)
from src.hotel_auth.core.storage import CredentialStore
from src.hotel_auth.entities.core.user import Role


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_credential_store(request: Request) -> CredentialStore:
    """Get the credential store instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.credential_store


def get_registration_orchestrator(request: Request) -> RegistrationOrchestrator:
    """Get the registration orchestrator instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.registration_orchestrator


def get_token_verifier(request: Request) -> TokenVerifier:
    """Get the token verifier instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.token_verifier


def get_orphan_reaper(request: Request) -> OrphanReaper:
    """Get the orphan reaper instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.orphan_reaper


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthError(AuthErrorReason.INVALID, "Missing Bearer token")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise AuthError(AuthErrorReason.INVALID, "Missing Bearer token")
    return token


async def get_current_identity(
    request: Request,
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Identity:
    """Authenticate the request using a Bearer token issued locally or externally."""
    identity = await verifier.verify(_bearer_token(request))
    request.state.identity = identity
    return identity


def require_role(*allowed: Role):
    """Create a dependency that admits only the given roles."""
    check = TokenVerifier.require_role(allowed)

    async def dep(identity: Identity = Depends(get_current_identity)) -> Identity:
        return check(identity)

    return dep


def require_min_role(minimum: Role):
    """Create a dependency that admits ``minimum`` and every role above it."""
    return require_role(*Role.at_or_above(minimum))
