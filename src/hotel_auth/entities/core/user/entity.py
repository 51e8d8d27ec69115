"""User domain entity."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from src.hotel_auth.entities.core._base import Entity


class Role(str, Enum):
    """Capability level. Declaration order is privilege order."""

    GUEST = "guest"
    MEMBER = "member"
    HOTEL_ADMIN = "hoteladmin"
    SUPERADMIN = "superadmin"

    @property
    def rank(self) -> int:
        return list(Role).index(self)

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank

    @classmethod
    def at_or_above(cls, minimum: "Role") -> frozenset["Role"]:
        return frozenset(role for role in cls if role.at_least(minimum))


class AuthProvider(str, Enum):
    """Current verification path of a user."""

    LOCAL = "local"
    EXTERNAL = "external"


class RegistrationState(str, Enum):
    PENDING_LINK = "PENDING_LINK"
    LINKED = "LINKED"
    LOCAL_ONLY = "LOCAL_ONLY"
    DELETED = "DELETED"


class User(Entity):
    """User entity representing a hotel staff account.

    This is the domain model handed out by the credential store. It is never
    serialized with its password hash; see ``to_public``.
    """

    email: str = Field(description="User's email address as supplied")
    password_hash: str | None = Field(
        default=None, description="bcrypt hash when a local credential exists"
    )
    first_name: str = Field(description="User's first name")
    last_name: str = Field(description="User's last name")
    display_name: str | None = Field(default=None, description="Display name")
    hotel_name: str | None = Field(default=None, description="Hotel the user manages")
    external_subject_id: str | None = Field(
        default=None, description="Subject id assigned by the external provider"
    )
    auth_provider: AuthProvider = Field(default=AuthProvider.LOCAL)
    role: Role = Field(default=Role.HOTEL_ADMIN)
    registration_state: RegistrationState = Field(
        default=RegistrationState.PENDING_LINK
    )
    link_failure: str | None = Field(
        default=None, description="Failure kind of the last non-fatal link attempt"
    )
    is_active: bool = Field(default=True)
    is_deleted: bool = Field(default=False)
    linked_at: datetime | None = Field(default=None)
    last_login_at: datetime | None = Field(default=None)
    login_count: int = Field(default=0)

    @property
    def is_resolvable(self) -> bool:
        """Whether a credential for this user may resolve successfully."""
        return self.is_active and not self.is_deleted

    def to_public(self) -> dict:
        """camelCase representation safe to return to clients."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "displayName": self.display_name,
            "hotelName": self.hotel_name,
            "role": self.role.value,
            "authProvider": self.auth_provider.value,
            "externalSubjectId": self.external_subject_id,
            "registrationState": self.registration_state.value,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat(),
            "linkedAt": self.linked_at.isoformat() if self.linked_at else None,
            "lastLoginAt": (
                self.last_login_at.isoformat() if self.last_login_at else None
            ),
            "loginCount": self.login_count,
        }
