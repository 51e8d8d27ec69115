"""User credential storage."""

from .credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    OrphanPolicy,
    SqlCredentialStore,
)

__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "OrphanPolicy",
    "SqlCredentialStore",
]
