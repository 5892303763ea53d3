import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

# Load env from gateway/.env
gateway_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(gateway_dir, ".env"))

# Import after dotenv is loaded
from gateway.core.config import Settings, cors_origins, forwarded_allow_ips, settings, validate_config  # noqa: E402
from gateway.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from gateway.core.logging import configure_logging  # noqa: E402
from gateway.core.middleware.metrics import MetricsMiddleware  # noqa: E402
from gateway.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from gateway.core.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402
from gateway.core.validation import validate_env  # noqa: E402
from gateway.api import chat, free_key, health, metrics  # noqa: E402
from gateway.features.admission.service import AdmissionPipeline  # noqa: E402
from gateway.features.identity.service import PlanLookup  # noqa: E402
from gateway.features.plans.catalog import PlanCatalog, build_catalog  # noqa: E402
from gateway.features.ratelimit.store import CounterStore  # noqa: E402
from gateway.features.responders.service import Responder, UpgradeFooter, build_responder  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("gateway")
    logger.info("Starting capability gateway...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logging.getLogger("gateway").info("Stopping capability gateway...")


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    catalog: Optional[PlanCatalog] = None,
    responder: Optional[Responder] = None,
    store: Optional[CounterStore] = None,
    time_fn: Optional[Callable[[], float]] = None,
    plan_lookup: Optional[PlanLookup] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Configuration problems (bad env, bad plan catalog) raise here, so a
    misconfigured process never starts serving.
    """
    cfg = settings_obj or settings

    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    catalog = catalog or build_catalog(cfg)
    clock = time_fn or time.time

    app = FastAPI(title="Capability Gateway", version=cfg.SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = cfg
    app.state.catalog = catalog
    app.state.pipeline = AdmissionPipeline.from_settings(
        catalog, cfg, store=store, time_fn=clock, plan_lookup=plan_lookup
    )
    app.state.responder = responder or build_responder(cfg)
    app.state.footer = UpgradeFooter(cfg.UPGRADE_URL, enabled=cfg.AD_DELIVERY_ENABLED, time_fn=clock)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enabled=cfg.SECURITY_HEADERS_ENABLED)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    origins = cors_origins(cfg)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["x-request-id", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

    # Outermost, so request.client is the real caller before any other layer reads it
    trusted_proxies = forwarded_allow_ips(cfg)
    if trusted_proxies:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=trusted_proxies)

    app.include_router(chat.router)
    app.include_router(free_key.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    return app


app = create_app()
