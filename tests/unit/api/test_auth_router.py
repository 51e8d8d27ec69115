"""HTTP tests for the auth and health routers."""

import asyncio
from collections.abc import Generator
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from loguru import logger

from src.hotel_auth.api.http.app import app, build_application_dependencies
from src.hotel_auth.api.http.app_data import ApplicationDependencies
from src.hotel_auth.api.http.routers.auth import run_saga
from src.hotel_auth.core.errors import (
    ConflictError,
    ExternalProviderError,
    ExternalProviderErrorKind,
)
from src.hotel_auth.core.services import DbSessionService
from src.hotel_auth.core.storage import InMemoryCredentialStore, SqlCredentialStore
from src.hotel_auth.entities.core._base import utc_now
from src.hotel_auth.entities.core.user import Role, User
from src.hotel_auth.runtime.context import get_config
from tests.fixtures.services import FakeIdentityProvider

REGISTER_BODY = {
    "email": "anna@hotel.test",
    "password": "s3cret!",
    "firstName": "Anna",
    "lastName": "Berg",
    "hotelName": "Seaside",
}


@pytest.fixture
def deps(
    memory_store: InMemoryCredentialStore, fake_provider: FakeIdentityProvider
) -> ApplicationDependencies:
    return build_application_dependencies(
        get_config(), credential_store=memory_store, identity_provider=fake_provider
    )


@pytest.fixture
def client(deps: ApplicationDependencies) -> Generator[TestClient]:
    """Test client wired to in-process dependencies; lifespan is not run."""
    app.state.app_dependencies = deps
    try:
        yield TestClient(app)
    finally:
        del app.state.app_dependencies


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _token_for(deps: ApplicationDependencies, role: Role) -> str:
    user = deps.credential_store.create_local(
        User(
            email=f"{role.value}@hotel.test",
            first_name="Admin",
            last_name="User",
            role=role,
        )
    )
    return deps.jwt_generation_service.generate_access_token(user)


class TestRegister:
    def test_register_links_user(self, client: TestClient):
        response = client.post("/auth/register", json=REGISTER_BODY)

        assert response.status_code == 201
        body = response.json()
        assert body["flow"] == "linked"
        assert body["state"] == "LINKED"
        assert body["externalFailure"] is None
        assert body["token"]
        assert body["user"]["email"] == "anna@hotel.test"
        assert body["user"]["externalSubjectId"] == "ext-subject-1"
        assert "passwordHash" not in body["user"]

    def test_provider_outage_still_registers(
        self, client: TestClient, fake_provider: FakeIdentityProvider
    ):
        fake_provider.create_error = ExternalProviderError(
            ExternalProviderErrorKind.UNAVAILABLE
        )

        response = client.post("/auth/register", json=REGISTER_BODY)

        assert response.status_code == 201
        body = response.json()
        assert body["flow"] == "local_only"
        assert body["state"] == "LOCAL_ONLY"
        assert body["externalFailure"] == "unavailable"
        assert body["user"]["authProvider"] == "local"

    def test_duplicate_is_conflict(
        self, client: TestClient, memory_store: InMemoryCredentialStore
    ):
        first = client.post("/auth/register", json=REGISTER_BODY)
        second = client.post(
            "/auth/register",
            json={**REGISTER_BODY, "email": "ANNA@hotel.test", "hotelName": "Other"},
        )

        assert second.status_code == 409
        assert "request_id" in second.json()
        stored = memory_store.find_by_email("anna@hotel.test")
        assert stored.id == first.json()["user"]["id"]
        assert stored.hotel_name == "Seaside"

    def test_invalid_fields(self, client: TestClient):
        response = client.post(
            "/auth/register", json={**REGISTER_BODY, "email": "nope", "password": "x"}
        )
        assert response.status_code == 400

    def test_superadmin_cannot_be_self_assigned(self, client: TestClient):
        response = client.post(
            "/auth/register", json={**REGISTER_BODY, "role": "superadmin"}
        )
        assert response.status_code == 400

    def test_unknown_role_is_bad_request(self, client: TestClient):
        response = client.post("/auth/register", json={**REGISTER_BODY, "role": "owner"})
        assert response.status_code == 400


class TestRegisterExternal:
    def test_create_then_existing(
        self, client: TestClient, fake_provider: FakeIdentityProvider
    ):
        token = fake_provider.issue_token("subject-5", "new@hotel.test", "New Person")

        created = client.post(
            "/auth/register-external",
            json={"externalToken": token, "additionalData": {"hotelName": "Bay"}},
        )
        again = client.post("/auth/register-external", json={"externalToken": token})

        assert created.status_code == 201
        assert created.json()["flow"] == "create-and-link"
        assert created.json()["user"]["hotelName"] == "Bay"
        assert again.status_code == 200
        assert again.json()["flow"] == "existing-linked"
        assert again.json()["user"]["id"] == created.json()["user"]["id"]

    def test_bad_token(self, client: TestClient):
        response = client.post("/auth/register-external", json={"externalToken": "x"})

        assert response.status_code == 401
        assert response.json()["reason"] == "invalid"

    def test_missing_token(self, client: TestClient):
        response = client.post("/auth/register-external", json={})
        assert response.status_code == 400

    def test_disabled_provider(self, memory_store: InMemoryCredentialStore):
        app.state.app_dependencies = build_application_dependencies(
            get_config(), credential_store=memory_store
        )
        try:
            response = TestClient(app).post(
                "/auth/register-external", json={"externalToken": "anything"}
            )
        finally:
            del app.state.app_dependencies

        assert response.status_code == 401


class TestLoginAndMe:
    def test_login_and_me(self, client: TestClient):
        client.post("/auth/register", json={**REGISTER_BODY, "skipExternal": True})

        login = client.post(
            "/auth/login", json={"email": "anna@hotel.test", "password": "s3cret!"}
        )
        assert login.status_code == 200
        assert login.json()["flow"] == "login"

        me = client.get("/auth/me", headers=_bearer(login.json()["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["email"] == "anna@hotel.test"
        assert me.json()["user"]["loginCount"] == 1
        assert me.json()["verifiedVia"] == "local"

    def test_me_with_external_token(
        self, client: TestClient, fake_provider: FakeIdentityProvider
    ):
        client.post("/auth/register", json=REGISTER_BODY)
        token = fake_provider.issue_token("ext-subject-1", "anna@hotel.test")

        me = client.get("/auth/me", headers=_bearer(token))

        assert me.status_code == 200
        assert me.json()["verifiedVia"] == "external"

    def test_bad_login(self, client: TestClient):
        response = client.post(
            "/auth/login", json={"email": "anna@hotel.test", "password": "wrong"}
        )
        assert response.status_code == 401
        assert response.json()["reason"] == "bad_credentials"

    def test_me_requires_token(self, client: TestClient):
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers=_bearer("garbage")).status_code == 401

    def test_forgot_password_does_not_reveal_accounts(self, client: TestClient):
        client.post("/auth/register", json=REGISTER_BODY)

        known = client.post("/auth/forgot-password", json={"email": "anna@hotel.test"})
        unknown = client.post("/auth/forgot-password", json={"email": "x@hotel.test"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()


class TestCleanupOrphaned:
    def test_requires_superadmin(
        self, client: TestClient, deps: ApplicationDependencies
    ):
        token = _token_for(deps, Role.HOTEL_ADMIN)

        response = client.delete("/auth/cleanup-orphaned", headers=_bearer(token))

        assert response.status_code == 403

    def test_requires_authentication(self, client: TestClient):
        assert client.delete("/auth/cleanup-orphaned").status_code == 401

    def test_sweeps_orphans(self, client: TestClient, deps: ApplicationDependencies):
        deps.credential_store.create_local(
            User(
                email="orphan@hotel.test",
                first_name="O",
                last_name="Rphan",
                created_at=utc_now() - timedelta(hours=2),
            )
        )
        token = _token_for(deps, Role.SUPERADMIN)

        first = client.delete(
            "/auth/cleanup-orphaned", params={"olderThan": 60}, headers=_bearer(token)
        )
        second = client.delete(
            "/auth/cleanup-orphaned", params={"olderThan": 60}, headers=_bearer(token)
        )

        assert first.status_code == 200
        assert first.json() == {
            "cleanedCount": 1,
            "olderThanMinutes": 60,
            "policy": "any_unlinked",
        }
        assert second.json()["cleanedCount"] == 0

    def test_negative_threshold_rejected(
        self, client: TestClient, deps: ApplicationDependencies
    ):
        token = _token_for(deps, Role.SUPERADMIN)

        response = client.delete(
            "/auth/cleanup-orphaned", params={"olderThan": -5}, headers=_bearer(token)
        )

        assert response.status_code == 400


class TestHealth:
    def test_liveness(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness_with_sql_store(self, db_service: DbSessionService):
        app.state.app_dependencies = build_application_dependencies(
            get_config(),
            database_service=db_service,
            credential_store=SqlCredentialStore(db_service),
        )
        try:
            response = TestClient(app).get("/health/ready")
        finally:
            del app.state.app_dependencies

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["identity_provider"]["status"] == "disabled"

    def test_security_headers(self, client: TestClient):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Request-ID"]


class TestRunSaga:
    @pytest.mark.asyncio
    async def test_returns_saga_result(self):
        outcome = object()

        async def saga():
            return outcome

        assert await run_saga(saga()) is outcome

    @pytest.mark.asyncio
    async def test_failure_after_cancellation_is_logged(self):
        messages: list[str] = []
        sink_id = logger.add(
            lambda message: messages.append(message.record["message"]),
            level="WARNING",
        )
        release = asyncio.Event()

        async def saga():
            await release.wait()
            raise ConflictError()

        request = asyncio.ensure_future(run_saga(saga()))
        await asyncio.sleep(0)
        request.cancel()
        with pytest.raises(asyncio.CancelledError):
            await request

        release.set()
        for _ in range(5):
            await asyncio.sleep(0)
        logger.remove(sink_id)

        assert "Registration saga failed after the request was cancelled" in messages
