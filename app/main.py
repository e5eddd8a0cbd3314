import logging

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.core.middleware import RequestIdMiddleware
from app.api.v1.router import v1_router

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Append-only action ledger and state projection for trade-finance contracts.",
        version="0.1.0",
    )
    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    logger.info(
        "[startup] env=%s api_prefix=%s admins=%d chain_rpc=%s",
        settings.environment, settings.api_prefix, len(settings.admin_addresses), settings.chain_rpc_url,
    )
    return app


app = create_app()
