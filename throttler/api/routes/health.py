from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check; never throttled and never touches the store."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(request: Request) -> dict:
    """Readiness check: the counter store must answer.

    Raises:
        StoreUnavailableError: Rendered as 503 by the exception handlers.
    """

    request.app.state.store.ping()
    return {"status": "ready"}
