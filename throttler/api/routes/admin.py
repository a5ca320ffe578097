"""Administrative inspection and reset of limiter state."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path

from throttler.core.auth import verify_api_key
from throttler.core.rate_limit import get_rate_limiter
from throttler.schemas.throttle import ThrottleClearResponse, ThrottleStatus
from throttler.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/throttle",
    tags=["Admin"],
    dependencies=[Depends(verify_api_key)],
)

Signature = Annotated[str, Path(min_length=1, max_length=256)]


@router.get("/{signature}", response_model=ThrottleStatus)
def get_throttle_status(
    signature: Signature,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> ThrottleStatus:
    """Report the attempt counter and window state for a signature."""

    return ThrottleStatus(
        signature=signature,
        attempts=limiter.attempts(signature),
        window_open=limiter.window_open(signature),
        available_in=limiter.available_in(signature),
    )


@router.delete("/{signature}", response_model=ThrottleClearResponse)
def clear_throttle(
    signature: Signature,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> ThrottleClearResponse:
    """Delete both the counter and the window timer for a signature."""

    limiter.clear(signature)
    logger.info("throttle.cleared", extra={"signature": signature[:12]})
    return ThrottleClearResponse(signature=signature)
