"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from src.hotel_auth.api.http.app_data import ApplicationDependencies
from src.hotel_auth.api.http.deps import get_app_dependencies
from src.hotel_auth.runtime.context import get_config

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness check; does not check dependencies."""
    return {"status": "healthy", "service": "hotel-auth"}


@router.get("/ready", response_model=None)
async def readiness(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> dict[str, Any] | JSONResponse:
    """Readiness check of the credential store and the identity provider.

    Returns 200 if all critical services are ready, 503 otherwise. The
    provider is only critical in production: registration degrades to
    local-only accounts without it.
    """
    config = get_config()

    checks: dict[str, Any] = {}
    all_healthy = True

    if app_deps.database_service is None:
        checks["database"] = {"status": "healthy", "type": "in-memory"}
    else:
        try:
            db_healthy = app_deps.database_service.health_check()
            checks["database"] = {
                "status": "healthy" if db_healthy else "unhealthy",
                "type": "sqlite" if config.database.is_sqlite else "postgresql",
            }
            if not db_healthy:
                all_healthy = False
        except Exception as e:
            checks["database"] = {"status": "unhealthy", "error": str(e)}
            all_healthy = False

    if app_deps.identity_provider is None:
        checks["identity_provider"] = {
            "status": "disabled",
            "note": "External identity is not enabled",
        }
    else:
        provider_config = config.identity_provider
        try:
            await app_deps.jwks_service.fetch_jwks(provider_config.jwks_uri)
            checks["identity_provider"] = {
                "status": "healthy",
                "name": provider_config.name,
                "issuer": provider_config.issuer,
            }
        except Exception as e:
            checks["identity_provider"] = {
                "status": "unhealthy",
                "name": provider_config.name,
                "error": str(e),
            }
            if config.app.environment == "production":
                all_healthy = False

    response = {
        "status": "ready" if all_healthy else "not_ready",
        "environment": config.app.environment,
        "checks": checks,
    }
    if not all_healthy:
        return JSONResponse(status_code=503, content=response)
    return response
