"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.hotel_auth.api.http.app_data import ApplicationDependencies
from src.hotel_auth.api.http.routers.auth import router as auth_router
from src.hotel_auth.api.http.routers.health import router as health_router
from src.hotel_auth.api.utils.app_startup import configure_logging
from src.hotel_auth.core.errors import AuthError, IdentityError
from src.hotel_auth.core.services import (
    DbSessionService,
    IdentityProviderClient,
    JWKSCacheInMemory,
    JwksService,
    JwtGeneratorService,
    JwtVerificationService,
    RestIdentityProviderClient,
)
from src.hotel_auth.core.services.auth import (
    OrphanReaper,
    RegistrationOrchestrator,
    TokenVerifier,
)
from src.hotel_auth.core.storage import CredentialStore, SqlCredentialStore
from src.hotel_auth.runtime.config.config_data import ConfigData
from src.hotel_auth.runtime.context import get_config
from src.hotel_auth.runtime.init_db import init_db

# Load configuration
main_config = get_config()


# Initialize logging
configure_logging()


# --- Security middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )
        response.headers.setdefault("Cache-Control", "no-store")
        # HSTS only in prod
        if get_config().app.environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        return response


def build_application_dependencies(
    config: ConfigData,
    *,
    database_service: DbSessionService | None = None,
    credential_store: CredentialStore | None = None,
    identity_provider: IdentityProviderClient | None = None,
) -> ApplicationDependencies:
    """Wire the services once per process.

    The identity provider client is only constructed when
    ``features.external_identity_enabled`` is set; otherwise every saga runs
    local-only and external tokens are rejected.
    """
    jwks_cache = JWKSCacheInMemory()
    jwks_service = JwksService(
        jwks_cache, timeout_seconds=config.identity_provider.timeout_seconds
    )
    jwt_verify_service = JwtVerificationService(jwks_service)
    jwt_generation_service = JwtGeneratorService()

    if credential_store is None:
        database_service = database_service or DbSessionService()
        credential_store = SqlCredentialStore(database_service)

    if identity_provider is None and config.features.external_identity_enabled:
        identity_provider = RestIdentityProviderClient(
            config.identity_provider, jwt_verify_service
        )

    return ApplicationDependencies(
        jwks_cache=jwks_cache,
        jwks_service=jwks_service,
        jwt_verify_service=jwt_verify_service,
        jwt_generation_service=jwt_generation_service,
        database_service=database_service,
        credential_store=credential_store,
        identity_provider=identity_provider,
        registration_orchestrator=RegistrationOrchestrator(
            credential_store,
            jwt_generation_service,
            identity_provider,
            config.registration,
        ),
        token_verifier=TokenVerifier(
            credential_store, jwt_verify_service, identity_provider
        ),
        orphan_reaper=OrphanReaper(credential_store, config.orphans.policy),
    )


# --- FastAPI app setup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup()
    try:
        yield
    finally:
        await shutdown()


app = FastAPI(
    title="Hotel Auth",
    lifespan=lifespan,
    docs_url=None if main_config.app.environment == "production" else "/docs",
    redoc_url=None if main_config.app.environment == "production" else "/redoc",
)

app.add_middleware(SecurityHeadersMiddleware)

# --- CORS configuration ---
if main_config.app.environment == "production" and (
    "*" in main_config.app.cors.origins
):
    raise RuntimeError(
        "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=main_config.app.cors.origins,
    allow_credentials=main_config.app.cors.allow_credentials,
    allow_methods=main_config.app.cors.allow_methods,
    allow_headers=main_config.app.cors.allow_headers,
)


def _show_internal_detail() -> bool:
    app_config = get_config().app
    return app_config.environment != "production" and app_config.debug_errors


def _error_response(
    request: Request, status_code: int, detail: Any, **extra: Any
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "-")
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": request_id, **extra},
        headers={"X-Request-ID": request_id},
    )


# --- Error mapping ---
@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    hide = exc.status_code >= 500 and not _show_internal_detail()
    extra = {"reason": exc.reason.value} if isinstance(exc, AuthError) else {}

    log = logger.bind(
        status_code=exc.status_code, error_type=type(exc).__name__, detail=exc.message
    )
    if exc.status_code >= 500:
        log.error("request.identity_error")
    else:
        log.info("request.identity_error")

    detail = exc.public_message if hide else exc.message
    return _error_response(request, exc.status_code, detail, **extra)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.bind(status_code=400, errors=errors).info("request.validation_error")
    return _error_response(request, 400, errors)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# --- Request logging middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    # query strings are not logged
    request_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": _client_ip(request),
        "user_agent": request.headers.get("user-agent", "unknown"),
    }

    start = time.perf_counter()
    with logger.contextualize(**request_ctx):
        logger.info("request.start")
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.bind(
                status_code=500,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            detail = (
                f"{type(exc).__name__}: {exc}"
                if _show_internal_detail()
                else "Internal Server Error"
            )
            return _error_response(request, 500, detail)

        logger.bind(
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        ).info("request.end")
        response.headers.setdefault("X-Request-ID", request_id)
        return response


# --- Router registration ---
app.include_router(auth_router)
app.include_router(health_router)


# --- Lifecycle hooks ---
async def startup() -> None:
    config = get_config()
    logger.info("Starting up application in {} environment", config.app.environment)

    if not config.app.session_signing_secret:
        if config.app.environment == "production":
            raise RuntimeError("app.session_signing_secret must be set in production")
        logger.warning("No session signing secret configured; token issuance will fail")

    deps = build_application_dependencies(config)
    if deps.database_service is not None:
        init_db(deps.database_service)
    app.state.app_dependencies = deps

    if deps.identity_provider is None:
        logger.info("External identity disabled; registrations will be local-only")
        return

    logger.bind(provider=config.identity_provider.name).info(
        "External identity enabled"
    )
    # Warm the JWKS cache so provider token failures surface early
    try:
        await deps.jwks_service.fetch_jwks(config.identity_provider.jwks_uri)
    except IdentityError as exc:
        logger.bind(error=exc.message).error("Provider JWKS readiness check failed")
        if config.app.environment == "production":
            raise RuntimeError("Provider JWKS readiness check failed") from exc


async def shutdown() -> None:
    logger.info("Shutting down application")
    app_dependencies: ApplicationDependencies | None = getattr(
        app.state, "app_dependencies", None
    )
    if app_dependencies is None:
        return
    if app_dependencies.identity_provider is not None:
        await app_dependencies.identity_provider.aclose()
    if app_dependencies.database_service is not None:
        app_dependencies.database_service.dispose()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=main_config.app.host,
        port=main_config.app.port,
        access_log=False,  # Access logging is done in middleware
    )
