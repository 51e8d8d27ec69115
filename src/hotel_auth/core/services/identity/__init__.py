"""External identity provider clients."""

from .provider import IdentityProviderClient
from .rest_client import RestIdentityProviderClient, classify_error

__all__ = ["IdentityProviderClient", "RestIdentityProviderClient", "classify_error"]
