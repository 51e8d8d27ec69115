"""Identity error taxonomy.

Services raise these errors to express failures of the registration saga and
of credential verification. The HTTP layer maps each one to its status code.
"""

from enum import Enum


class IdentityError(Exception):
    """Base class for all identity errors."""

    status_code: int = 500
    public_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(IdentityError):
    """Request fields failed checks performed before any mutation."""

    status_code = 400
    public_message = "Invalid request"


class ConflictError(IdentityError):
    """Email already registered, locally or at the external provider."""

    status_code = 409
    public_message = "User with this email already exists"


class AuthErrorReason(str, Enum):
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    BAD_CREDENTIALS = "bad_credentials"


class AuthError(IdentityError):
    """Credential could not be verified or resolved to an active user."""

    status_code = 401
    public_message = "Invalid authentication token"

    def __init__(
        self,
        reason: AuthErrorReason = AuthErrorReason.INVALID,
        message: str | None = None,
    ):
        self.reason = reason
        super().__init__(message)


class AuthorizationError(IdentityError):
    """Resolved identity lacks the required role."""

    status_code = 403
    public_message = "Insufficient role"


class NotFoundError(IdentityError):
    """Unknown user or subject."""

    status_code = 404
    public_message = "User not found"


class ExternalProviderErrorKind(str, Enum):
    ALREADY_EXISTS = "already_exists"
    WEAK_SECRET = "weak_secret"
    INVALID_INPUT = "invalid_input"
    UNAVAILABLE = "unavailable"


class ExternalProviderError(IdentityError):
    """Failure reported by the external identity provider.

    Never surfaced to callers directly: the orchestrator converts it into a
    ConflictError (already_exists) or a local-only registration (other kinds).
    """

    status_code = 502
    public_message = "External identity provider error"

    def __init__(self, kind: ExternalProviderErrorKind, message: str | None = None):
        self.kind = kind
        super().__init__(message or kind.value)


class InternalError(IdentityError):
    """Unexpected store or service failure."""

    status_code = 500
    public_message = "Internal Server Error"
