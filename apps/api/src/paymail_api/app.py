from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from loguru import logger

from paymail_api.core.settings import settings
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.billing import StripeEventSource
from .services.notifications import NotificationDispatcher


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    http_client = httpx.AsyncClient(timeout=settings.stylesheet_fetch_timeout_seconds)
    event_source = StripeEventSource.from_settings(settings)
    dispatcher = NotificationDispatcher.from_settings(settings=settings, http_client=http_client)

    app.state.stripe_event_source = event_source
    app.state.notification_dispatcher = dispatcher

    if event_source.configured:
        logger.info(
            "Stripe webhook intake enabled",
            event_kinds=sorted(settings.notification_event_kinds),
        )
    else:
        logger.warning(
            "Stripe webhook intake disabled",
            reason="stripe_secret_key or stripe_webhook_secret is empty",
        )
    if not settings.templates_bucket:
        logger.info("Templates bucket not configured; built-in fallback content will be used")

    try:
        yield
    finally:
        await http_client.aclose()


def create_app() -> FastAPI:
    """Application factory for the Paymail FastAPI service."""
    configure_logging(
        service_name="paymail-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Paymail API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="paymail-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
