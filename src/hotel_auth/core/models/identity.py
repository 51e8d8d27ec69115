"""Identity value types shared by the saga, the verifier and the HTTP layer."""

from enum import Enum

from pydantic import BaseModel, Field

from src.hotel_auth.entities.core.user.entity import (
    AuthProvider,
    RegistrationState,
    Role,
    User,
)


class Flow(str, Enum):
    """How a registration, adoption or login reached its terminal state."""

    LINKED = "linked"
    LOCAL_ONLY = "local_only"
    ROLLBACK = "rollback"
    EXISTING_LINKED = "existing-linked"
    ADOPT_AND_LINK = "adopt-and-link"
    CREATE_AND_LINK = "create-and-link"
    LOGIN = "login"


class VerificationPath(str, Enum):
    LOCAL = "local"
    EXTERNAL = "external"


class Identity(BaseModel):
    """Canonical local identity a bearer credential resolves to."""

    user_id: str
    email: str
    role: Role
    auth_provider: AuthProvider
    external_subject_id: str | None = None
    verified_via: VerificationPath

    @classmethod
    def from_user(cls, user: User, verified_via: VerificationPath) -> "Identity":
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            auth_provider=user.auth_provider,
            external_subject_id=user.external_subject_id,
            verified_via=verified_via,
        )


class ExternalIdentity(BaseModel):
    """Subject and email asserted by a verified provider token."""

    subject_id: str
    email: str | None = None
    email_verified: bool = False
    display_name: str | None = None


class RegistrationInput(BaseModel):
    """Fields accepted by the ordinary registration saga."""

    email: str = ""
    password: str | None = None
    first_name: str = ""
    last_name: str = ""
    display_name: str | None = None
    role: Role | None = None
    hotel_name: str | None = None
    skip_external: bool = False
    skip_password: bool = False

    @property
    def resolved_display_name(self) -> str:
        return self.display_name or f"{self.first_name} {self.last_name}".strip()


class RegistrationResult(BaseModel):
    """Terminal outcome of a saga: the user, a local token and the flow tag."""

    user: User
    token: str
    flow: Flow
    external_failure: str | None = Field(
        default=None, description="Failure kind when the provider step degraded"
    )

    @property
    def state(self) -> RegistrationState:
        return self.user.registration_state
