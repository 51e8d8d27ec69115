"""Identity services: registration saga, token verification, orphan cleanup."""

from .orphan_reaper import OrphanReaper
from .registration import RegistrationOrchestrator
from .token_verifier import TokenVerifier

__all__ = ["OrphanReaper", "RegistrationOrchestrator", "TokenVerifier"]
