from dataclasses import dataclass

from src.hotel_auth.core.services import (
    DbSessionService,
    IdentityProviderClient,
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
from src.hotel_auth.core.storage import CredentialStore


@dataclass
class ApplicationDependencies:
    jwks_cache: JWKSCacheInMemory
    jwks_service: JwksService
    jwt_verify_service: JwtVerificationService
    jwt_generation_service: JwtGeneratorService
    database_service: DbSessionService | None
    credential_store: CredentialStore
    identity_provider: IdentityProviderClient | None
    registration_orchestrator: RegistrationOrchestrator
    token_verifier: TokenVerifier
    orphan_reaper: OrphanReaper
