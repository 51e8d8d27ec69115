"""Identity provider client speaking an Identity-Toolkit style REST API."""

from typing import Any

import httpx
from loguru import logger

from src.hotel_auth.core.errors import (
    ExternalProviderError,
    ExternalProviderErrorKind,
)
from src.hotel_auth.core.models.identity import ExternalIdentity
from src.hotel_auth.core.services.identity.provider import IdentityProviderClient
from src.hotel_auth.core.services.jwt.jwt_verify import JwtVerificationService
from src.hotel_auth.runtime.config.config_data import IdentityProviderConfig

# Provider error message prefix -> failure kind
_ERROR_KINDS: dict[str, ExternalProviderErrorKind] = {
    "EMAIL_EXISTS": ExternalProviderErrorKind.ALREADY_EXISTS,
    "DUPLICATE_EMAIL": ExternalProviderErrorKind.ALREADY_EXISTS,
    "DUPLICATE_LOCAL_ID": ExternalProviderErrorKind.ALREADY_EXISTS,
    "WEAK_PASSWORD": ExternalProviderErrorKind.WEAK_SECRET,
    "INVALID_EMAIL": ExternalProviderErrorKind.INVALID_INPUT,
    "MISSING_EMAIL": ExternalProviderErrorKind.INVALID_INPUT,
    "MISSING_PASSWORD": ExternalProviderErrorKind.INVALID_INPUT,
    "INVALID_PASSWORD": ExternalProviderErrorKind.INVALID_INPUT,
    "TOO_MANY_ATTEMPTS_TRY_LATER": ExternalProviderErrorKind.UNAVAILABLE,
    "QUOTA_EXCEEDED": ExternalProviderErrorKind.UNAVAILABLE,
}

_NOT_FOUND_MESSAGES = ("USER_NOT_FOUND", "EMAIL_NOT_FOUND")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", ""))
    return ""


def classify_error(response: httpx.Response) -> ExternalProviderError:
    """Map a failed provider response onto a failure kind."""
    message = _error_message(response)
    code = message.split(":", 1)[0].strip()
    kind = _ERROR_KINDS.get(code)
    if kind is None:
        if response.status_code >= 500 or response.status_code == 429:
            kind = ExternalProviderErrorKind.UNAVAILABLE
        else:
            kind = ExternalProviderErrorKind.INVALID_INPUT
    return ExternalProviderError(kind, message or f"HTTP {response.status_code}")


class RestIdentityProviderClient(IdentityProviderClient):
    """Provider client owning one pooled HTTP client for the process lifetime."""

    def __init__(
        self,
        config: IdentityProviderConfig,
        jwt_verify_service: JwtVerificationService,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._jwt_verify = jwt_verify_service
        self._client = httpx.AsyncClient(
            base_url=config.api_base_url.rstrip("/") + "/",
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def _params(self) -> dict[str, str]:
        return {"key": self._config.api_key} if self._config.api_key else {}

    def _admin_headers(self) -> dict[str, str]:
        if self._config.admin_bearer_token:
            return {"Authorization": f"Bearer {self._config.admin_bearer_token}"}
        return {}

    async def _post(self, path: str, payload: dict[str, Any], admin: bool = False) -> httpx.Response:
        try:
            return await self._client.post(
                path,
                json=payload,
                params=self._params(),
                headers=self._admin_headers() if admin else None,
            )
        except httpx.TimeoutException as exc:
            raise ExternalProviderError(
                ExternalProviderErrorKind.UNAVAILABLE, f"{path} timed out"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalProviderError(
                ExternalProviderErrorKind.UNAVAILABLE, f"{path} failed: {exc}"
            ) from exc

    async def create_identity(
        self, email: str, secret: str | None, display_name: str | None
    ) -> str:
        payload: dict[str, Any] = {"email": email, "returnSecureToken": False}
        if secret:
            payload["password"] = secret
        if display_name:
            payload["displayName"] = display_name

        response = await self._post("/accounts:signUp", payload)
        if response.is_error:
            error = classify_error(response)
            logger.bind(provider=self._config.name, kind=error.kind.value).warning(
                "External identity creation failed"
            )
            raise error

        subject_id = response.json().get("localId")
        if not subject_id:
            raise ExternalProviderError(
                ExternalProviderErrorKind.UNAVAILABLE, "Provider returned no subject id"
            )
        logger.bind(provider=self._config.name, subject_id=subject_id).info(
            "External identity created"
        )
        return subject_id

    async def delete_identity(self, subject_id: str) -> None:
        response = await self._post(
            "/accounts:delete", {"localId": subject_id}, admin=True
        )
        if response.is_error:
            message = _error_message(response)
            if message.startswith(_NOT_FOUND_MESSAGES):
                logger.bind(subject_id=subject_id).info(
                    "External identity already absent"
                )
                return
            raise classify_error(response)
        logger.bind(provider=self._config.name, subject_id=subject_id).info(
            "External identity deleted"
        )

    async def verify_token(self, token: str) -> ExternalIdentity:
        claims = await self._jwt_verify.verify_provider_jwt(token, self._config)
        return ExternalIdentity(
            subject_id=claims.subject,
            email=claims.email,
            email_verified=claims.email_verified,
            display_name=claims.name,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
