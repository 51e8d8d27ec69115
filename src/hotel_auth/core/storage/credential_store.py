"""Credential store interface and implementations.

The credential store owns user records and their lifecycle fields. Email
uniqueness and the conditional linkage update are atomic at this level, which
is what makes concurrent duplicate registrations resolve deterministically.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Literal

from loguru import logger
from sqlalchemy.exc import IntegrityError

from src.hotel_auth.core.errors import ConflictError, NotFoundError
from src.hotel_auth.core.services.database.db_session import DbSessionService
from src.hotel_auth.entities.core._base import utc_now
from src.hotel_auth.entities.core.user import (
    AuthProvider,
    RegistrationState,
    User,
    UserRepository,
    normalize_email,
)

OrphanPolicy = Literal["any_unlinked", "failed_link_only"]


class CredentialStore(ABC):
    """Abstract interface for the primary user store."""

    @abstractmethod
    def create_local(self, user: User) -> User:
        """Insert a new user.

        Raises:
            ConflictError: if a non-deleted user already has this email
                (case-insensitive) or the external subject is taken
        """

    @abstractmethod
    def link_external(self, user_id: str, subject_id: str) -> User:
        """Record the external subject on a user that is still unlinked.

        Raises:
            NotFoundError: if the user is unknown, deleted or already linked
            ConflictError: if the subject is linked to another user
        """

    @abstractmethod
    def mark_local_only(self, user_id: str, failure_kind: str | None = None) -> User:
        """Finalize an unlinked user as local-only.

        Raises:
            NotFoundError: if the user is unknown, deleted or already linked
        """

    @abstractmethod
    def find_by_email(self, email: str) -> User | None:
        """Case-insensitive lookup over non-deleted users."""

    @abstractmethod
    def find_by_external_subject(self, subject_id: str) -> User | None:
        """Lookup of the non-deleted user linked to an external subject."""

    @abstractmethod
    def find_by_id(self, user_id: str) -> User | None:
        """Lookup by primary id, deleted users included."""

    @abstractmethod
    def record_login(self, user_id: str) -> User:
        """Bump login bookkeeping.

        Raises:
            NotFoundError: if the user is unknown
        """

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        """Hard delete. Only used to compensate the first saga step."""

    @abstractmethod
    def mark_orphaned_older_than(
        self, older_than: timedelta, policy: OrphanPolicy = "any_unlinked"
    ) -> int:
        """Soft-delete orphaned users created before now - older_than.

        Returns:
            Number of users soft-deleted by this call
        """


def _is_orphan(user: User, cutoff: datetime, policy: OrphanPolicy) -> bool:
    if user.is_deleted or user.external_subject_id is not None:
        return False
    if user.auth_provider != AuthProvider.LOCAL or user.created_at >= cutoff:
        return False
    if policy == "failed_link_only":
        return (
            user.link_failure is not None
            or user.registration_state == RegistrationState.PENDING_LINK
        )
    return True


class InMemoryCredentialStore(CredentialStore):
    """Process-local store guarded by a single lock.

    Used by tests and local development; every read returns a copy so callers
    cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()

    def _get_live(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        if user is None or user.is_deleted:
            return None
        return user

    def create_local(self, user: User) -> User:
        key = normalize_email(user.email)
        with self._lock:
            for existing in self._users.values():
                if existing.is_deleted:
                    continue
                if normalize_email(existing.email) == key:
                    raise ConflictError()
                if (
                    user.external_subject_id is not None
                    and existing.external_subject_id == user.external_subject_id
                ):
                    raise ConflictError("External identity already linked")
            stored = user.model_copy(deep=True)
            self._users[stored.id] = stored
            return stored.model_copy(deep=True)

    def link_external(self, user_id: str, subject_id: str) -> User:
        with self._lock:
            user = self._get_live(user_id)
            if user is None or user.external_subject_id is not None:
                raise NotFoundError("User not found or already linked")
            if any(
                other.external_subject_id == subject_id
                for other in self._users.values()
            ):
                raise ConflictError("External identity already linked")
            now = utc_now()
            user.external_subject_id = subject_id
            user.auth_provider = AuthProvider.EXTERNAL
            user.registration_state = RegistrationState.LINKED
            user.link_failure = None
            user.linked_at = now
            user.updated_at = now
            return user.model_copy(deep=True)

    def mark_local_only(self, user_id: str, failure_kind: str | None = None) -> User:
        with self._lock:
            user = self._get_live(user_id)
            if user is None or user.external_subject_id is not None:
                raise NotFoundError("User not found or already linked")
            user.auth_provider = AuthProvider.LOCAL
            user.registration_state = RegistrationState.LOCAL_ONLY
            user.link_failure = failure_kind
            user.updated_at = utc_now()
            return user.model_copy(deep=True)

    def find_by_email(self, email: str) -> User | None:
        key = normalize_email(email)
        with self._lock:
            for user in self._users.values():
                if not user.is_deleted and normalize_email(user.email) == key:
                    return user.model_copy(deep=True)
        return None

    def find_by_external_subject(self, subject_id: str) -> User | None:
        with self._lock:
            for user in self._users.values():
                if not user.is_deleted and user.external_subject_id == subject_id:
                    return user.model_copy(deep=True)
        return None

    def find_by_id(self, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def record_login(self, user_id: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError()
            now = utc_now()
            user.last_login_at = now
            user.login_count += 1
            user.updated_at = now
            return user.model_copy(deep=True)

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._users.pop(user_id, None) is not None

    def mark_orphaned_older_than(
        self, older_than: timedelta, policy: OrphanPolicy = "any_unlinked"
    ) -> int:
        cutoff = utc_now() - older_than
        count = 0
        with self._lock:
            for user in self._users.values():
                if _is_orphan(user, cutoff, policy):
                    user.is_deleted = True
                    user.is_active = False
                    user.registration_state = RegistrationState.DELETED
                    user.updated_at = utc_now()
                    count += 1
        return count


class SqlCredentialStore(CredentialStore):
    """Relational store; every operation runs in its own committed transaction.

    Saga steps must be durable independently of each other, so nothing here
    shares a transaction across calls.
    """

    def __init__(self, db: DbSessionService) -> None:
        self._db = db

    def create_local(self, user: User) -> User:
        try:
            with self._db.session_scope() as session:
                return UserRepository(session).create(user)
        except IntegrityError as exc:
            logger.bind(user_id=user.id).info("Duplicate user rejected by store")
            raise ConflictError() from exc

    def link_external(self, user_id: str, subject_id: str) -> User:
        try:
            with self._db.session_scope() as session:
                repo = UserRepository(session)
                linked = (
                    repo.get(user_id)
                    if repo.link_external(user_id, subject_id)
                    else None
                )
        except IntegrityError as exc:
            raise ConflictError("External identity already linked") from exc
        if linked is None:
            raise NotFoundError("User not found or already linked")
        return linked

    def mark_local_only(self, user_id: str, failure_kind: str | None = None) -> User:
        with self._db.session_scope() as session:
            repo = UserRepository(session)
            user = (
                repo.get(user_id)
                if repo.mark_local_only(user_id, failure_kind)
                else None
            )
        if user is None:
            raise NotFoundError("User not found or already linked")
        return user

    def find_by_email(self, email: str) -> User | None:
        with self._db.session_scope() as session:
            return UserRepository(session).get_by_email(email)

    def find_by_external_subject(self, subject_id: str) -> User | None:
        with self._db.session_scope() as session:
            return UserRepository(session).get_by_external_subject(subject_id)

    def find_by_id(self, user_id: str) -> User | None:
        with self._db.session_scope() as session:
            return UserRepository(session).get(user_id)

    def record_login(self, user_id: str) -> User:
        with self._db.session_scope() as session:
            repo = UserRepository(session)
            user = repo.get(user_id) if repo.record_login(user_id) else None
        if user is None:
            raise NotFoundError()
        return user

    def delete(self, user_id: str) -> bool:
        with self._db.session_scope() as session:
            return UserRepository(session).delete(user_id)

    def mark_orphaned_older_than(
        self, older_than: timedelta, policy: OrphanPolicy = "any_unlinked"
    ) -> int:
        cutoff = utc_now() - older_than
        with self._db.session_scope() as session:
            return UserRepository(session).soft_delete_orphans(
                cutoff, failed_link_only=policy == "failed_link_only"
            )
