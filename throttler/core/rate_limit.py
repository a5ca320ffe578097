"""Request throttling middleware.

This module wires the fixed-window RateLimiter into the HTTP layer. For every
request it resolves a rate rule and a requester signature, then either
short-circuits with a rejection or forwards the request and annotates the
response with quota headers.

Store calls are synchronous; they run in the default executor so the event
loop is not blocked while Redis answers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AbstractSet, Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from throttler.core.auth import resolve_user_id
from throttler.core.config import ThrottleConfig
from throttler.core.errors import StoreUnavailableError
from throttler.schemas.throttle import FailMode, RateRule, RequesterContext, ThrottleRejection
from throttler.services.rate_limiter import RateLimiter
from throttler.services.rule_resolver import RuleResolver
from throttler.services.signature_resolver import SignatureResolver

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class Admission:
    """Outcome of the limiter check for one request."""

    allowed: bool
    remaining: int = 0
    retry_after: int | None = None


def build_requester_context(
    request: Request,
    *,
    api_keys: AbstractSet[str] = frozenset(),
    trust_forwarded_for: bool = False,
) -> RequesterContext:
    """Collect the caller identity from the request.

    Args:
        request: Incoming request.
        api_keys: Keys that identify an authenticated caller.
        trust_forwarded_for: Take the client IP from the first
            ``X-Forwarded-For`` hop when running behind a trusted proxy.
    """

    client_ip = request.client.host if request.client else "unknown"
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            client_ip = first_hop

    return RequesterContext(
        user_id=resolve_user_id(request.headers.get("x-api-key"), api_keys),
        client_ip=client_ip,
        headers=dict(request.headers),
        params=dict(request.query_params),
    )


def get_rate_limiter(request: Request) -> RateLimiter:
    """FastAPI dependency returning the limiter built by the app factory."""

    return request.app.state.rate_limiter


def add_limit_headers(
    response: Response,
    max_attempts: int,
    remaining: int,
    retry_after: int | None = None,
) -> Response:
    """Add the limit header information to the given response."""

    response.headers["X-RateLimit-Limit"] = str(max_attempts)
    response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
    if retry_after is not None:
        response.headers["Retry-After"] = str(retry_after)
    return response


class ThrottleMiddleware:
    """Throttle requests per signature using a shared fixed-window limiter.

    Usage:
        app.middleware("http")(ThrottleMiddleware(limiter, config).dispatch)
    """

    def __init__(
        self,
        limiter: RateLimiter,
        config: ThrottleConfig,
        *,
        api_keys: AbstractSet[str] = frozenset(),
        trust_forwarded_for: bool = False,
    ) -> None:
        self._limiter = limiter
        self._config = config
        self._rules = RuleResolver(config)
        self._signatures = SignatureResolver(config)
        self._api_keys = frozenset(api_keys)
        self._trust_forwarded_for = trust_forwarded_for

    def resolve(self, request: Request) -> tuple[str, RateRule]:
        """Resolve the signature and rule for a request."""

        requester = build_requester_context(
            request,
            api_keys=self._api_keys,
            trust_forwarded_for=self._trust_forwarded_for,
        )
        rule = self._rules.resolve(request.method, request.url.path)
        signature = self._signatures.resolve(
            request.method, request.url.path, rule.level, requester
        )
        return signature, rule

    def admit(self, signature: str, rule: RateRule) -> Admission:
        """Check the limit and record the attempt when allowed."""

        if self._limiter.too_many_attempts(signature, rule.max_attempts):
            return Admission(
                allowed=False,
                remaining=self._limiter.retries_left(signature, rule.max_attempts),
                retry_after=self._limiter.available_in(signature),
            )

        self._limiter.hit(signature, rule.window_units)
        return Admission(allowed=True)

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        if request.url.path in self._config.exempt_paths:
            return await call_next(request)

        signature, rule = self.resolve(request)
        loop = asyncio.get_running_loop()

        try:
            admission = await loop.run_in_executor(None, self.admit, signature, rule)
        except StoreUnavailableError as exc:
            return await self._on_store_unavailable(request, call_next, rule, exc)

        if not admission.allowed:
            logger.warning(
                "throttle.blocked",
                extra={
                    "signature": signature[:12],
                    "api_name": rule.api_name,
                    "level": rule.level.value,
                    "limit": rule.max_attempts,
                    "window_units": rule.window_units,
                    "retry_after_s": admission.retry_after,
                },
            )
            return self.build_rejection(
                request, rule.max_attempts, admission.remaining, admission.retry_after
            )

        response = await call_next(request)

        if not isinstance(response, Response):
            return response

        try:
            remaining = await loop.run_in_executor(
                None, self._limiter.retries_left, signature, rule.max_attempts
            )
        except StoreUnavailableError:
            logger.warning(
                "throttle.headers_skipped",
                extra={"signature": signature[:12], "reason": "store_unavailable"},
            )
            return response

        logger.debug(
            "throttle.allowed",
            extra={
                "signature": signature[:12],
                "api_name": rule.api_name,
                "level": rule.level.value,
                "limit": rule.max_attempts,
                "remaining": remaining,
            },
        )
        return add_limit_headers(response, rule.max_attempts, remaining)

    def build_rejection(
        self,
        request: Request,
        max_attempts: int,
        remaining: int,
        retry_after: int | None,
    ) -> Response:
        """Create a 'too many attempts' response.

        The inbound Authorization header is copied onto the rejection.
        """

        body = ThrottleRejection(
            status=0,
            code=self._config.error_code,
            msg=self._config.error_message,
        )
        headers: dict[str, str] = {}
        authorization = request.headers.get("authorization")
        if authorization:
            headers["Authorization"] = authorization

        response = JSONResponse(
            status_code=self._config.rejection_status_code,
            content=body.model_dump(),
            headers=headers,
        )
        return add_limit_headers(response, max_attempts, remaining, retry_after)

    async def _on_store_unavailable(
        self,
        request: Request,
        call_next: CallNext,
        rule: RateRule,
        exc: StoreUnavailableError,
    ) -> Response:
        logger.error(
            "throttle.store_unavailable",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "fail_mode": self._config.fail_mode.value,
                "api_name": rule.api_name,
            },
        )

        if self._config.fail_mode is FailMode.CLOSED:
            return self.build_rejection(
                request,
                rule.max_attempts,
                0,
                self._limiter.window_seconds(rule.window_units),
            )

        return await call_next(request)
