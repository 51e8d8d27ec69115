"""Credential store contract, exercised against both adapters."""

import threading
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path

import pytest
from sqlmodel import create_engine

from src.hotel_auth.core.errors import ConflictError, IdentityError, NotFoundError
from src.hotel_auth.core.services.database.db_session import DbSessionService
from src.hotel_auth.core.storage import (
    CredentialStore,
    InMemoryCredentialStore,
    SqlCredentialStore,
)
from src.hotel_auth.entities.core._base import utc_now
from src.hotel_auth.entities.core.user import AuthProvider, RegistrationState, User


def _user(email: str = "anna@hotel.test", **kwargs) -> User:
    return User(email=email, first_name="Anna", last_name="Berg", **kwargs)


def _old_user(email: str, **kwargs) -> User:
    return _user(email, created_at=utc_now() - timedelta(hours=2), **kwargs)


class TestCreateAndFind:
    def test_create_local_returns_stored_user(self, store: CredentialStore):
        created = store.create_local(_user())

        assert created.registration_state == RegistrationState.PENDING_LINK
        assert store.find_by_id(created.id).email == "anna@hotel.test"

    def test_duplicate_email_is_conflict_case_insensitive(self, store: CredentialStore):
        first = store.create_local(_user("anna@hotel.test", hotel_name="Seaside"))

        with pytest.raises(ConflictError):
            store.create_local(_user("ANNA@Hotel.Test", hotel_name="Other"))

        unchanged = store.find_by_email("anna@hotel.test")
        assert unchanged.id == first.id
        assert unchanged.hotel_name == "Seaside"

    def test_find_by_email_ignores_case(self, store: CredentialStore):
        created = store.create_local(_user("Anna@Hotel.test"))
        assert store.find_by_email("anna@HOTEL.TEST").id == created.id

    def test_find_missing_returns_none(self, store: CredentialStore):
        assert store.find_by_email("nobody@hotel.test") is None
        assert store.find_by_external_subject("nope") is None
        assert store.find_by_id("nope") is None

    def test_delete_removes_record(self, store: CredentialStore):
        created = store.create_local(_user())

        assert store.delete(created.id) is True
        assert store.find_by_id(created.id) is None
        assert store.delete(created.id) is False


class TestLinking:
    def test_link_external_sets_linkage_fields(self, store: CredentialStore):
        created = store.create_local(_user())

        linked = store.link_external(created.id, "subject-1")

        assert linked.external_subject_id == "subject-1"
        assert linked.auth_provider == AuthProvider.EXTERNAL
        assert linked.registration_state == RegistrationState.LINKED
        assert linked.linked_at is not None
        assert store.find_by_external_subject("subject-1").id == created.id

    def test_link_external_only_once(self, store: CredentialStore):
        created = store.create_local(_user())
        store.link_external(created.id, "subject-1")

        with pytest.raises(NotFoundError):
            store.link_external(created.id, "subject-2")

        assert store.find_by_id(created.id).external_subject_id == "subject-1"

    def test_link_unknown_user(self, store: CredentialStore):
        with pytest.raises(NotFoundError):
            store.link_external("missing", "subject-1")

    def test_subject_cannot_link_two_users(self, store: CredentialStore):
        first = store.create_local(_user("a@hotel.test"))
        second = store.create_local(_user("b@hotel.test"))
        store.link_external(first.id, "subject-1")

        with pytest.raises(ConflictError):
            store.link_external(second.id, "subject-1")

        assert store.find_by_id(second.id).external_subject_id is None

    def test_mark_local_only(self, store: CredentialStore):
        created = store.create_local(_user())

        user = store.mark_local_only(created.id, "weak_secret")

        assert user.registration_state == RegistrationState.LOCAL_ONLY
        assert user.auth_provider == AuthProvider.LOCAL
        assert user.link_failure == "weak_secret"

    def test_mark_local_only_refuses_linked_user(self, store: CredentialStore):
        created = store.create_local(_user())
        store.link_external(created.id, "subject-1")

        with pytest.raises(NotFoundError):
            store.mark_local_only(created.id)


class TestRecordLogin:
    def test_record_login_increments(self, store: CredentialStore):
        created = store.create_local(_user())

        store.record_login(created.id)
        user = store.record_login(created.id)

        assert user.login_count == 2
        assert user.last_login_at is not None

    def test_record_login_unknown_user(self, store: CredentialStore):
        with pytest.raises(NotFoundError):
            store.record_login("missing")


class TestOrphans:
    def test_unlinked_old_users_are_soft_deleted(self, store: CredentialStore):
        orphan = store.create_local(_old_user("orphan@hotel.test"))
        linked = store.create_local(_old_user("linked@hotel.test"))
        store.link_external(linked.id, "subject-1")
        fresh = store.create_local(_user("fresh@hotel.test"))

        assert store.mark_orphaned_older_than(timedelta(hours=1)) == 1

        deleted = store.find_by_id(orphan.id)
        assert deleted.is_deleted
        assert deleted.registration_state == RegistrationState.DELETED
        assert store.find_by_email("orphan@hotel.test") is None
        assert store.find_by_id(linked.id).is_deleted is False
        assert store.find_by_id(fresh.id).is_deleted is False

    def test_sweep_is_idempotent(self, store: CredentialStore):
        store.create_local(_old_user("orphan@hotel.test"))

        assert store.mark_orphaned_older_than(timedelta(hours=1)) == 1
        assert store.mark_orphaned_older_than(timedelta(hours=1)) == 0

    def test_failed_link_only_policy(self, store: CredentialStore):
        failed = store.create_local(_old_user("failed@hotel.test"))
        store.mark_local_only(failed.id, "unavailable")
        opted_out = store.create_local(_old_user("optout@hotel.test"))
        store.mark_local_only(opted_out.id, None)
        pending = store.create_local(_old_user("pending@hotel.test"))

        cleaned = store.mark_orphaned_older_than(
            timedelta(hours=1), policy="failed_link_only"
        )

        assert cleaned == 2
        assert store.find_by_id(failed.id).is_deleted
        assert store.find_by_id(pending.id).is_deleted
        assert not store.find_by_id(opted_out.id).is_deleted

    def test_email_is_free_after_soft_delete(self, store: CredentialStore):
        store.create_local(_old_user("anna@hotel.test"))
        store.mark_orphaned_older_than(timedelta(hours=1))

        again = store.create_local(_user("anna@hotel.test"))
        assert store.find_by_email("anna@hotel.test").id == again.id


@pytest.fixture(params=["memory", "sql"])
def shared_store(
    request: pytest.FixtureRequest, tmp_path: Path
) -> Generator[CredentialStore]:
    """Store reachable from several threads, each with its own connection."""
    if request.param == "memory":
        yield InMemoryCredentialStore()
        return

    engine = create_engine(
        f"sqlite:///{tmp_path / 'users.db'}",
        connect_args={"check_same_thread": False, "timeout": 20},
    )
    db = DbSessionService(engine)
    db.create_all()
    yield SqlCredentialStore(db)
    engine.dispose()


def _race(*calls: Callable[[], User]) -> list[User | IdentityError]:
    """Start every call at the same moment on its own thread."""
    barrier = threading.Barrier(len(calls))

    def run(call: Callable[[], User]) -> User | IdentityError:
        barrier.wait()
        try:
            return call()
        except IdentityError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


class TestConcurrency:
    def test_concurrent_create_same_email(self, shared_store: CredentialStore):
        outcomes = _race(
            lambda: shared_store.create_local(_user("anna@hotel.test")),
            lambda: shared_store.create_local(_user("ANNA@hotel.test")),
        )

        created = [o for o in outcomes if isinstance(o, User)]
        conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 1
        assert shared_store.find_by_email("anna@hotel.test").id == created[0].id

    def test_concurrent_link_same_user(self, shared_store: CredentialStore):
        user = shared_store.create_local(_user())

        outcomes = _race(
            lambda: shared_store.link_external(user.id, "subject-a"),
            lambda: shared_store.link_external(user.id, "subject-b"),
        )

        linked = [o for o in outcomes if isinstance(o, User)]
        refused = [o for o in outcomes if isinstance(o, NotFoundError)]
        assert len(linked) == 1
        assert len(refused) == 1
        stored = shared_store.find_by_id(user.id)
        assert stored.external_subject_id == linked[0].external_subject_id
        assert stored.registration_state == RegistrationState.LINKED
