"""Application factory for FastAPI app.

Centralizes app construction (store, limiter, middleware, handlers, routers)
so tests can build an app around an in-memory store and a fake clock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import FastAPI

from throttler.adapters.store import AbstractStore, create_store
from throttler.api.routes import admin_router, demo_router, health_router
from throttler.core.auth import parse_api_keys
from throttler.core.config import Settings, ThrottleConfig, settings as default_settings
from throttler.core.exception_handlers import setup_exception_handlers
from throttler.core.logging import configure_logging
from throttler.core.middleware import request_id_middleware
from throttler.core.rate_limit import ThrottleMiddleware
from throttler.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    store: AbstractStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the environment-loaded ones.
        store: Counter store; built from settings when omitted.
        clock: Time source shared by the limiter.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    throttle_config = ThrottleConfig.from_settings(cfg.throttle)
    store = store or create_store(cfg)
    limiter = RateLimiter(store, rate_unit=throttle_config.rate_unit, clock=clock)

    app = FastAPI(
        title="Throttler",
        description=(
            "Per-requester request throttling backed by a shared Redis store. "
            "Responses carry X-RateLimit-Limit / X-RateLimit-Remaining headers; "
            "rejections add Retry-After."
        ),
        version="0.1.0",
    )
    app.state.store = store
    app.state.rate_limiter = limiter
    app.state.throttle_config = throttle_config

    # Registration order: the last middleware added runs first, so the
    # request id is already set when throttle decisions are logged.
    if cfg.throttle.enabled:
        throttle = ThrottleMiddleware(
            limiter,
            throttle_config,
            api_keys=parse_api_keys(cfg.app.api_keys),
            trust_forwarded_for=cfg.app.trust_forwarded_for,
        )
        app.middleware("http")(throttle.dispatch)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(demo_router)
    app.include_router(admin_router)

    logger.info(
        "app.created",
        extra={
            "store": type(store).__name__,
            "throttle_enabled": cfg.throttle.enabled,
            "limit_level": throttle_config.limit_level.value,
            "rate_unit": throttle_config.rate_unit.value,
            "fail_mode": throttle_config.fail_mode.value,
        },
    )
    return app
