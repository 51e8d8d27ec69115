"""Registration saga across the credential store and the external provider."""

import asyncio
from typing import Any

from loguru import logger

from src.hotel_auth.core.errors import (
    AuthError,
    AuthErrorReason,
    ConflictError,
    ExternalProviderError,
    ExternalProviderErrorKind,
    InternalError,
    NotFoundError,
    ValidationError,
)
from src.hotel_auth.core.models.identity import (
    Flow,
    RegistrationInput,
    RegistrationResult,
)
from src.hotel_auth.core.security import (
    hash_password,
    is_valid_email,
    validate_registration,
    verify_password,
)
from src.hotel_auth.core.services.identity.provider import IdentityProviderClient
from src.hotel_auth.core.services.jwt.jwt_gen import JwtGeneratorService
from src.hotel_auth.core.storage.credential_store import CredentialStore
from src.hotel_auth.entities.core._base import utc_now
from src.hotel_auth.entities.core.user.entity import (
    AuthProvider,
    RegistrationState,
    Role,
    User,
)
from src.hotel_auth.runtime.config.config_data import RegistrationConfig
from src.hotel_auth.runtime.context import get_config

# Recorded on the user when the provider step failed for a reason outside the
# provider's own error kinds.
UNEXPECTED_FAILURE = "unexpected"
LINK_FAILURE = "link_failed"


def _names_from_external(
    email: str, display_name: str | None, additional_data: dict[str, Any]
) -> tuple[str, str, str]:
    """Derive first, last and display names for an account created from a token."""
    first_name = (additional_data.get("firstName") or "").strip()
    last_name = (additional_data.get("lastName") or "").strip()
    display = (additional_data.get("displayName") or display_name or "").strip()

    if not first_name and not last_name and display:
        first_name, _, last_name = display.partition(" ")

    if not first_name:
        name_part = email.split("@")[0]
        first_name = name_part.replace(".", " ").replace("_", " ").title()

    first_name = first_name or "Unknown"
    last_name = last_name.strip() or "User"
    return first_name, last_name, display or f"{first_name} {last_name}"


class RegistrationOrchestrator:
    """Drives user registration through ordered, compensatable steps.

    The local record is always written first. The external identity is
    mirrored afterwards when a provider is configured, and the two are joined
    by a conditional link update. There is no shared transaction: every step
    after the local insert is either completed or compensated, so the saga
    always ends with the user ``LINKED`` or ``LOCAL_ONLY``, or with no user at
    all when the email is already taken.
    """

    def __init__(
        self,
        store: CredentialStore,
        jwt_generation_service: JwtGeneratorService,
        identity_provider: IdentityProviderClient | None = None,
        config: RegistrationConfig | None = None,
    ):
        self._store = store
        self._jwt_gen = jwt_generation_service
        self._provider = identity_provider
        self._config = config

    @property
    def external_enabled(self) -> bool:
        return self._provider is not None

    def _registration_config(self) -> RegistrationConfig:
        return self._config or get_config().registration

    def _issue(self, user: User, flow: Flow, failure: str | None = None) -> RegistrationResult:
        token = self._jwt_gen.generate_access_token(user)
        return RegistrationResult(user=user, token=token, flow=flow, external_failure=failure)

    async def register(self, data: RegistrationInput) -> RegistrationResult:
        """Register a new user.

        Args:
            data: Registration fields

        Returns:
            The stored user, a local token and the flow the saga took

        Raises:
            ValidationError: if a field rule fails; nothing is written
            ConflictError: if the email is taken locally or at the provider
        """
        config = self._registration_config()
        validate_registration(
            data,
            min_password_length=config.min_password_length,
            max_self_assign_role=Role(config.max_self_assign_role),
        )

        email = data.email.strip()
        password = data.password or None
        if data.skip_password:
            password = None
        display_name = data.resolved_display_name
        # bcrypt is CPU bound; keep it off the event loop
        password_hash = (
            await asyncio.to_thread(hash_password, password) if password else None
        )

        user = User(
            email=email,
            password_hash=password_hash,
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            display_name=display_name,
            hotel_name=data.hotel_name,
            role=data.role or Role(config.default_role),
            auth_provider=AuthProvider.LOCAL,
            registration_state=RegistrationState.PENDING_LINK,
        )

        # Step 1: local create. Conflicts propagate with nothing to undo.
        created = self._store.create_local(user)
        log = logger.bind(user_id=created.id, email=created.email)
        log.info("Local user created, pending link")

        if self._provider is None or data.skip_external:
            log.bind(skip_external=data.skip_external).info(
                "External identity step skipped"
            )
            return self._issue(self._finalize_local_only(created, None), Flow.LOCAL_ONLY)

        # Step 2: external create.
        try:
            subject_id = await self._provider.create_identity(
                email, password, display_name
            )
        except ExternalProviderError as exc:
            if exc.kind == ExternalProviderErrorKind.ALREADY_EXISTS:
                self._store.delete(created.id)
                log.warning("Email already registered at provider; local user removed")
                raise ConflictError() from exc
            log.bind(kind=exc.kind.value).warning(
                "External identity creation failed; keeping local-only account"
            )
            finalized = self._finalize_local_only(created, exc.kind.value)
            return self._issue(finalized, Flow.LOCAL_ONLY, exc.kind.value)
        except Exception:
            log.exception("Unexpected error creating external identity")
            finalized = self._finalize_local_only(created, UNEXPECTED_FAILURE)
            return self._issue(finalized, Flow.LOCAL_ONLY, UNEXPECTED_FAILURE)

        # Step 3: conditional link.
        log = log.bind(subject_id=subject_id)
        try:
            linked = self._store.link_external(created.id, subject_id)
        except Exception as exc:
            log.bind(error=str(exc)).warning("Link step failed; rolling back external identity")
            await self._compensate_external(subject_id)
            finalized = self._finalize_local_only(created, LINK_FAILURE)
            return self._issue(finalized, Flow.ROLLBACK, LINK_FAILURE)

        log.info("User linked to external identity")
        return self._issue(linked, Flow.LINKED)

    async def _compensate_external(self, subject_id: str) -> None:
        try:
            await self._provider.delete_identity(subject_id)
        except Exception:
            # The orphaned external identity is left for manual cleanup
            logger.bind(subject_id=subject_id).exception(
                "Failed to delete external identity during rollback"
            )
        else:
            logger.bind(subject_id=subject_id).info(
                "External identity deleted during rollback"
            )

    def _finalize_local_only(self, user: User, failure_kind: str | None) -> User:
        try:
            return self._store.mark_local_only(user.id, failure_kind)
        except NotFoundError as exc:
            current = self._store.find_by_id(user.id)
            if current is None or current.is_deleted:
                raise InternalError("Registration record disappeared") from exc
            return current

    async def register_from_external(
        self, external_token: str, additional_data: dict[str, Any] | None = None
    ) -> RegistrationResult:
        """Resolve or create the local user for a provider-issued token.

        Raises:
            AuthError: provider disabled, token rejected, or user inactive
            ConflictError: the token's email belongs to a user linked elsewhere,
                or matches a local user while still unverified
        """
        if self._provider is None:
            raise AuthError(AuthErrorReason.INVALID, "External identity is not enabled")

        try:
            external = await self._provider.verify_token(external_token)
        except (AuthError, ExternalProviderError) as exc:
            logger.bind(error=exc.message).info("External token rejected")
            raise AuthError(AuthErrorReason.INVALID) from exc

        log = logger.bind(subject_id=external.subject_id)

        existing = self._store.find_by_external_subject(external.subject_id)
        if existing is not None:
            if not existing.is_active:
                raise AuthError(AuthErrorReason.INACTIVE, "User account is inactive")
            user = self._store.record_login(existing.id)
            log.bind(user_id=user.id).info("External token resolved to linked user")
            return self._issue(user, Flow.EXISTING_LINKED)

        email = (external.email or "").strip()
        if not email or not is_valid_email(email):
            raise AuthError(AuthErrorReason.INVALID, "External token carries no email")

        by_email = self._store.find_by_email(email)
        if by_email is not None:
            if by_email.external_subject_id is not None:
                log.bind(user_id=by_email.id).warning(
                    "Email already linked to a different external identity"
                )
                raise ConflictError("Email is linked to a different external identity")
            if not external.email_verified:
                log.bind(user_id=by_email.id).warning(
                    "Unverified external email matches an unlinked local user"
                )
                raise ConflictError(
                    "Email must be verified with the provider before linking"
                )
            if not by_email.is_active:
                raise AuthError(AuthErrorReason.INACTIVE, "User account is inactive")
            try:
                linked = self._store.link_external(by_email.id, external.subject_id)
            except NotFoundError as exc:
                raise ConflictError("User was linked concurrently") from exc
            log.bind(user_id=linked.id).info("Existing local user adopted and linked")
            return self._issue(linked, Flow.ADOPT_AND_LINK)

        first_name, last_name, display_name = _names_from_external(
            email, external.display_name, additional_data or {}
        )
        hotel_name = (additional_data or {}).get("hotelName")
        now = utc_now()
        created = self._store.create_local(
            User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                display_name=display_name,
                hotel_name=hotel_name,
                external_subject_id=external.subject_id,
                auth_provider=AuthProvider.EXTERNAL,
                role=Role(self._registration_config().default_role),
                registration_state=RegistrationState.LINKED,
                linked_at=now,
            )
        )
        log.bind(user_id=created.id).info("User created from external identity")
        return self._issue(created, Flow.CREATE_AND_LINK)

    async def login(self, email: str, password: str) -> RegistrationResult:
        """Check a local password and issue a token.

        Raises:
            ValidationError: if email or password is missing
            AuthError: bad credentials or inactive user
        """
        if not email or not password:
            raise ValidationError("email and password are required")

        user = self._store.find_by_email(email.strip())
        if user is None or not await asyncio.to_thread(
            verify_password, password, user.password_hash
        ):
            logger.info("Login rejected: bad credentials")
            raise AuthError(AuthErrorReason.BAD_CREDENTIALS, "Invalid credentials")
        if not user.is_active:
            raise AuthError(AuthErrorReason.INACTIVE, "User account is inactive")

        user = self._store.record_login(user.id)
        logger.bind(user_id=user.id).info("User logged in")
        return self._issue(user, Flow.LOGIN)
