"""FastAPI application factory for the codboard API."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings  # noqa: E402
from .telemetry import init_sentry  # noqa: E402
from .routers import billing as billing_router  # noqa: E402
from .routers import campaigns as campaigns_router  # noqa: E402
from .routers import orders as orders_router  # noqa: E402
from .routers import products as products_router  # noqa: E402
from . import schemas  # noqa: E402


def create_app() -> FastAPI:
    init_sentry()

    app = FastAPI(
        title="codboard API",
        description="""
        Order management backend for cash-on-delivery sellers.

        - Bulk CSV order import matched to the product catalog by SKU
        - Monthly order limits per plan
        - Advertising campaigns and allocation of their cost onto orders
        - CSV export of orders with net profit after advertising

        ## Authentication

        Every `/businesses/{business_id}` endpoint requires the `access_token`
        cookie (JWT) of a user whose active business is `business_id`.
        """,
        version="1.0.0",
    )

    settings = get_settings()

    # BACKEND_CORS_ORIGINS is a comma-separated list
    allowed_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.include_router(orders_router.router)
    app.include_router(products_router.router)
    app.include_router(campaigns_router.router)
    app.include_router(billing_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return {"status": "ok"}

    return app


app = create_app()
