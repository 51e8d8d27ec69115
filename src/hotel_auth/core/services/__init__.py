"""Core services exports."""

# Database Service
from .database.db_session import DbSessionService

# Identity Provider
from .identity.provider import IdentityProviderClient
from .identity.rest_client import RestIdentityProviderClient

# JWT Services
from .jwt.jwks import JWKSCache, JWKSCacheInMemory, JwksService
from .jwt.jwt_gen import JwtGeneratorService
from .jwt.jwt_verify import JwtVerificationService

__all__ = [
    # JWT Services
    "JWKSCache",
    "JWKSCacheInMemory",
    "JwksService",
    "JwtGeneratorService",
    "JwtVerificationService",
    # Identity Provider
    "IdentityProviderClient",
    "RestIdentityProviderClient",
    # Database Service
    "DbSessionService",
]
