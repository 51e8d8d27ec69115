from .identity import (
    ExternalIdentity,
    Flow,
    Identity,
    RegistrationInput,
    RegistrationResult,
    VerificationPath,
)

__all__ = [
    "ExternalIdentity",
    "Flow",
    "Identity",
    "RegistrationInput",
    "RegistrationResult",
    "VerificationPath",
]
