import logging
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.core.config import settings
from app.core.errors import init_sentry, is_sentry_enabled
from app.core.exceptions import ConfigurationError
from app.api import webhooks
from app.middleware.context import RequestContextMiddleware
from app.services.billing_client import BillingClient

logger = logging.getLogger(__name__)


def build_billing_client() -> BillingClient | None:
    """Build the Dodo client once per process. None when not configured."""
    try:
        return BillingClient.from_settings(settings)
    except ConfigurationError as e:
        logger.error(f"Dodo webhooks disabled: {e}")
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("=" * 50)
    logger.info(f"{settings.PROJECT_NAME} Starting")
    init_sentry(
        settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )
    app.state.billing_client = build_billing_client()
    logger.info(f"Dodo webhooks: {'ENABLED' if app.state.billing_client else 'NOT CONFIGURED'}")
    logger.info("=" * 50)

    yield


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json", lifespan=lifespan)

# Trust X-Forwarded-* from the load balancer
app.add_middleware(cast(Any, ProxyHeadersMiddleware), trusted_hosts=["*"])
app.add_middleware(cast(Any, RequestContextMiddleware))


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"{exc} ({request.url.path})")
    return JSONResponse({"error": "Webhook not configured"}, status_code=500)


app.include_router(webhooks.router, prefix=settings.API_V1_STR, tags=["webhooks"])


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/billing")
def health_billing(request: Request):
    """Whether the Dodo webhook client and error tracking are configured. Never returns secrets."""
    client = getattr(request.app.state, "billing_client", None)
    return {
        "configured": client is not None,
        "environment": client.environment if client else settings.DODO_ENVIRONMENT,
        "error_tracking": is_sentry_enabled(),
    }
