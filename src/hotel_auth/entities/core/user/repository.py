"""User repository for data access operations."""

from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, col, select

from src.hotel_auth.entities.core._base import utc_now

from .entity import AuthProvider, RegistrationState, User
from .table import UserTable


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """Data-access layer for users.

    Every query is bound to the caller's session; committing is the caller's
    responsibility.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @staticmethod
    def _to_entity(row: UserTable) -> User:
        return User.model_validate(row, from_attributes=True)

    def get(self, user_id: str) -> User | None:
        row = self._session.get(UserTable, user_id)
        if row is None:
            return None
        return self._to_entity(row)

    def get_by_email(self, email: str) -> User | None:
        statement = select(UserTable).where(
            UserTable.email_normalized == normalize_email(email),
            UserTable.is_deleted == False,  # noqa: E712
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return self._to_entity(row)

    def get_by_external_subject(self, subject_id: str) -> User | None:
        statement = select(UserTable).where(
            UserTable.external_subject_id == subject_id,
            UserTable.is_deleted == False,  # noqa: E712
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return self._to_entity(row)

    def create(self, user: User) -> User:
        row = UserTable(
            id=user.id,
            email=user.email,
            email_normalized=normalize_email(user.email),
            password_hash=user.password_hash,
            first_name=user.first_name,
            last_name=user.last_name,
            display_name=user.display_name,
            hotel_name=user.hotel_name,
            external_subject_id=user.external_subject_id,
            auth_provider=user.auth_provider.value,
            role=user.role.value,
            registration_state=user.registration_state.value,
            link_failure=user.link_failure,
            is_active=user.is_active,
            is_deleted=user.is_deleted,
            linked_at=user.linked_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return self._to_entity(row)

    def link_external(self, user_id: str, subject_id: str) -> bool:
        """Set the external subject only while the user is still unlinked.

        Returns False when no row matched, which covers unknown, deleted and
        already linked users alike.
        """
        now = utc_now()
        statement = (
            update(UserTable)
            .where(
                col(UserTable.id) == user_id,
                col(UserTable.external_subject_id).is_(None),
                col(UserTable.is_deleted).is_(False),
            )
            .values(
                external_subject_id=subject_id,
                auth_provider=AuthProvider.EXTERNAL.value,
                registration_state=RegistrationState.LINKED.value,
                link_failure=None,
                linked_at=now,
                updated_at=now,
            )
        )
        result = self._session.exec(statement)  # type: ignore[call-overload]
        return result.rowcount == 1

    def mark_local_only(self, user_id: str, failure_kind: str | None) -> bool:
        statement = (
            update(UserTable)
            .where(
                col(UserTable.id) == user_id,
                col(UserTable.external_subject_id).is_(None),
                col(UserTable.is_deleted).is_(False),
            )
            .values(
                auth_provider=AuthProvider.LOCAL.value,
                registration_state=RegistrationState.LOCAL_ONLY.value,
                link_failure=failure_kind,
                updated_at=utc_now(),
            )
        )
        result = self._session.exec(statement)  # type: ignore[call-overload]
        return result.rowcount == 1

    def record_login(self, user_id: str) -> bool:
        now = utc_now()
        statement = (
            update(UserTable)
            .where(col(UserTable.id) == user_id)
            .values(
                last_login_at=now,
                login_count=UserTable.login_count + 1,
                updated_at=now,
            )
        )
        result = self._session.exec(statement)  # type: ignore[call-overload]
        return result.rowcount == 1

    def delete(self, user_id: str) -> bool:
        row = self._session.get(UserTable, user_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def soft_delete_orphans(self, cutoff: datetime, failed_link_only: bool) -> int:
        """Soft-delete unlinked local users created before ``cutoff``."""
        conditions = [
            col(UserTable.auth_provider) == AuthProvider.LOCAL.value,
            col(UserTable.external_subject_id).is_(None),
            col(UserTable.is_deleted).is_(False),
            col(UserTable.created_at) < cutoff,
        ]
        if failed_link_only:
            conditions.append(
                col(UserTable.link_failure).is_not(None)
                | (
                    col(UserTable.registration_state)
                    == RegistrationState.PENDING_LINK.value
                )
            )
        statement = (
            update(UserTable)
            .where(*conditions)
            .values(
                is_deleted=True,
                is_active=False,
                registration_state=RegistrationState.DELETED.value,
                updated_at=utc_now(),
            )
        )
        result = self._session.exec(statement)  # type: ignore[call-overload]
        return result.rowcount
