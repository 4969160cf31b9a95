"""
TenderGuard API - Main Application
==================================

Builds the FastAPI app: logging, New Relic request attributes, CORS,
error handlers, health endpoints and the versioned routers.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import newrelic.agent

# Root logger defaults to WARNING; service logs are INFO
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.session import init_db, close_db
from app.services.cache import init_redis, close_redis
from app.core.errors import setup_exception_handlers

logger = logging.getLogger("app.main")

API_VERSION = "1.0.0"
BILLING_PREFIXES = ("/api/v1/subscription", "/api/v1/webhooks")


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Tags each New Relic transaction with route, status, latency, the
    authenticated user and whether the request hit a billing endpoint.

    Written as raw ASGI: BaseHTTPMiddleware runs the endpoint in another
    task, which loses New Relic's contextvars and drops the database and
    RevenueCat spans from the trace.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            txn = newrelic.agent.current_transaction()
            if txn:
                newrelic.agent.add_custom_attributes(
                    self._attributes(scope, status_code, time.perf_counter() - start)
                )

    @staticmethod
    def _attributes(scope, status_code: int, elapsed: float) -> list[tuple]:
        path = scope.get("path", "unknown")
        route = scope.get("route")
        client = scope.get("client")

        attributes = [
            ("http.method", scope.get("method", "")),
            ("http.route", route.path if route else path),
            ("http.status_code", status_code),
            ("http.duration_ms", round(elapsed * 1000, 2)),
            ("http.client_ip", client[0] if client else "unknown"),
            ("environment", settings.ENVIRONMENT),
            ("billing.request", path.startswith(BILLING_PREFIXES)),
        ]

        # Starlette keeps request.state in the scope as a plain dict
        state = scope.get("state")
        user_id = state.get("user_id") if isinstance(state, dict) else None
        if user_id:
            attributes.append(("enduser.id", str(user_id)))

        return attributes


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open database and Redis connections; the app still starts if either fails."""
    logger.info("Starting TenderGuard API (%s)", settings.ENVIRONMENT)

    if settings.auth_disabled:
        logger.warning(
            "Authentication is DISABLED (DEV_AUTH_DISABLED=true); "
            "every request runs as the development user"
        )
    if not settings.REVENUECAT_API_KEY:
        logger.warning("REVENUECAT_API_KEY is not set; purchases cannot be verified")
    if not settings.REVENUECAT_WEBHOOK_SECRET:
        logger.warning("REVENUECAT_WEBHOOK_SECRET is not set; webhooks will be rejected")
    elif settings.is_production and not settings.REVENUECAT_VERIFY_WEBHOOK_AUTH:
        logger.warning("Webhook Authorization header is not being checked in production")

    try:
        await init_db()
    except Exception as e:
        logger.error("Database connection failed: %s", e)

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis unavailable, caching disabled: %s", e)

    yield

    logger.info("Shutting down TenderGuard API")
    await close_db()
    await close_redis()


app = FastAPI(
    title="TenderGuard API",
    description="""
## TenderGuard Billing & Identity Backend

Accounts and subscription billing for the TenderGuard fraud-detection platform.

### Features
- **Authentication**: Email/password and Supabase Auth bearer tokens
- **Profile**: Profile data with a subscription summary
- **Subscription**: RevenueCat purchase verification, status and catalog
- **Webhooks**: RevenueCat subscription lifecycle events
    """,
    version=API_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
    responses={
        401: {"description": "Not authenticated"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(NewRelicTransactionMiddleware)

setup_exception_handlers(app)


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Liveness probe. Also reports which billing credentials are present."""
    return {
        "status": "healthy",
        "version": API_VERSION,
        "environment": settings.ENVIRONMENT,
        "billing": {
            "revenuecat_api_key": bool(settings.REVENUECAT_API_KEY),
            "webhook_secret": bool(settings.REVENUECAT_WEBHOOK_SECRET),
        },
    }


@app.get("/", tags=["Health"])
async def root() -> dict:
    return {
        "name": "TenderGuard API",
        "version": API_VERSION,
        "docs": "/docs" if settings.is_development else "Disabled in production",
    }


# =============================================================================
# API Routes
# =============================================================================

from app.api.v1 import auth, profile, subscription, webhooks

app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(profile.router, prefix="/api/v1/profile", tags=["Profile"])
app.include_router(subscription.router, prefix="/api/v1/subscription", tags=["Subscription"])
app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
