"""FastAPI application entrypoint.

Configures CORS, maps domain errors to HTTP responses, includes routers,
and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings
from .errors import PortalError
from .routers import admin as admin_router
from .routers import meta as meta_router
from .routers import notifications as notifications_router
from .routers import onboarding as onboarding_router
from . import schemas

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


def create_app() -> FastAPI:
    app = FastAPI(
        title="NextMove Portal API",
        description="""
        Customer portal for the NextMove onboarding program.

        This API provides endpoints for:
        - Onboarding progress through the five program phases
        - The one-time business checklist
        - Meta Ads connection and metric snapshots
        - Lead notifications
        - Admin tracking, phase advancement and approvals

        ## Authentication

        JWT in an HTTP-only `access_token` cookie. Customer endpoints require an
        approved customer account, `/admin` endpoints require an admin account.
        """,
        version="1.0.0",
        license_info={
            "name": "Proprietary",
        },
    )

    # Trust X-Forwarded-Proto from the load balancer
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    settings = get_settings()

    # BACKEND_CORS_ORIGINS is a comma-separated list
    allowed_origins = [
        origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()
    ]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"[API] {request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(onboarding_router.router)
    app.include_router(meta_router.router)
    app.include_router(notifications_router.router)
    app.include_router(admin_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Unauthenticated liveness probe for the load balancer.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
