"""Registration, login and identity endpoints."""

import asyncio
from collections.abc import Coroutine
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.responses import JSONResponse

from src.hotel_auth.api.http.deps import (
    get_credential_store,
    get_current_identity,
    get_orphan_reaper,
    get_registration_orchestrator,
    require_min_role,
)
from src.hotel_auth.core.errors import AuthError, AuthErrorReason
from src.hotel_auth.core.models.identity import (
    Flow,
    Identity,
    RegistrationInput,
    RegistrationResult,
)
from src.hotel_auth.core.services.auth import OrphanReaper, RegistrationOrchestrator
from src.hotel_auth.core.storage import CredentialStore
from src.hotel_auth.entities.core.user import Role
from src.hotel_auth.runtime.context import get_config

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, password reset instructions have been sent."
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """Body of ``POST /auth/register``; field rules are checked by the saga."""

    email: str = ""
    password: str | None = None
    first_name: str = ""
    last_name: str = ""
    display_name: str | None = None
    role: Role | None = None
    hotel_name: str | None = None
    skip_external: bool = False
    skip_password: bool = False


class RegisterExternalRequest(CamelModel):
    external_token: str = Field(min_length=1)
    additional_data: dict[str, Any] = Field(default_factory=dict)


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""


class ForgotPasswordRequest(CamelModel):
    email: str = ""


def _log_abandoned_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is None:
        return
    logger.bind(error_type=type(exc).__name__, error=str(exc)).warning(
        "Registration saga failed after the request was cancelled"
    )


async def run_saga(
    saga: Coroutine[Any, Any, RegistrationResult],
) -> RegistrationResult:
    """Run ``saga`` to its terminal state even if the request is cancelled.

    A failure of an abandoned saga is logged instead of being dropped.
    """
    task = asyncio.ensure_future(saga)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        task.add_done_callback(_log_abandoned_failure)
        raise


def _result_body(result: RegistrationResult) -> dict[str, Any]:
    return {
        "user": result.user.to_public(),
        "token": result.token,
        "flow": result.flow.value,
        "state": result.state.value,
        "externalFailure": result.external_failure,
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    orchestrator: RegistrationOrchestrator = Depends(get_registration_orchestrator),
) -> dict[str, Any]:
    """Register a user locally and, when enabled, with the external provider.

    The saga is shielded from client disconnects so that it always reaches a
    terminal state, compensations included.
    """
    data = RegistrationInput(**body.model_dump())
    result = await run_saga(orchestrator.register(data))
    return _result_body(result)


@router.post("/register-external", response_model=None)
async def register_external(
    body: RegisterExternalRequest,
    orchestrator: RegistrationOrchestrator = Depends(get_registration_orchestrator),
) -> JSONResponse:
    """Resolve, adopt or create the local user behind a provider-issued token."""
    result = await run_saga(
        orchestrator.register_from_external(body.external_token, body.additional_data)
    )
    status_code = (
        status.HTTP_200_OK
        if result.flow == Flow.EXISTING_LINKED
        else status.HTTP_201_CREATED
    )
    return JSONResponse(status_code=status_code, content=_result_body(result))


@router.post("/login")
async def login(
    body: LoginRequest,
    orchestrator: RegistrationOrchestrator = Depends(get_registration_orchestrator),
) -> dict[str, Any]:
    result = await orchestrator.login(body.email, body.password)
    return _result_body(result)


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest) -> dict[str, str]:
    """Acknowledge a reset request without revealing whether the email exists."""
    logger.info("Password reset requested")
    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.get("/me")
async def me(
    identity: Identity = Depends(get_current_identity),
    store: CredentialStore = Depends(get_credential_store),
) -> dict[str, Any]:
    """Return the stored user behind the bearer credential."""
    user = store.find_by_id(identity.user_id)
    if user is None or not user.is_resolvable:
        raise AuthError(AuthErrorReason.NOT_FOUND, "User not found")
    return {"user": user.to_public(), "verifiedVia": identity.verified_via.value}


@router.delete("/cleanup-orphaned")
async def cleanup_orphaned(
    older_than: int | None = Query(default=None, alias="olderThan", ge=0),
    identity: Identity = Depends(require_min_role(Role.SUPERADMIN)),
    reaper: OrphanReaper = Depends(get_orphan_reaper),
) -> dict[str, Any]:
    """Soft-delete local accounts that never linked to the external provider."""
    minutes = (
        older_than
        if older_than is not None
        else get_config().orphans.default_grace_minutes
    )
    cleaned = reaper.sweep(timedelta(minutes=minutes))
    logger.bind(user_id=identity.user_id, cleaned=cleaned).info(
        "Orphan cleanup requested"
    )
    return {"cleanedCount": cleaned, "olderThanMinutes": minutes, "policy": reaper.policy}
