"""External identity provider interface."""

from abc import ABC, abstractmethod

from src.hotel_auth.core.models.identity import ExternalIdentity


class IdentityProviderClient(ABC):
    """Abstract interface for an external identity-as-a-service.

    Implementations make a single attempt per call, bounded by a timeout.
    Failures are reported as ExternalProviderError with a kind; timeouts and
    transport errors are ``unavailable``.
    """

    @abstractmethod
    async def create_identity(
        self, email: str, secret: str | None, display_name: str | None
    ) -> str:
        """Create an external identity.

        Returns:
            Subject id assigned by the provider

        Raises:
            ExternalProviderError: already_exists, weak_secret, invalid_input
                or unavailable
        """

    @abstractmethod
    async def delete_identity(self, subject_id: str) -> None:
        """Delete an external identity. Unknown subjects are not an error.

        Raises:
            ExternalProviderError: unavailable
        """

    @abstractmethod
    async def verify_token(self, token: str) -> ExternalIdentity:
        """Verify a provider-issued token.

        Raises:
            AuthError: if the token does not verify
            ExternalProviderError: unavailable
        """

    async def aclose(self) -> None:
        """Release network resources. Called once at shutdown."""
        return None
