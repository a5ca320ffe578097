"""Throttling domain types and response schemas.

Plain enums and frozen dataclasses describe what is being limited and how;
Pydantic models describe what goes over the wire (rejection payload, admin
status).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, Field


class LimitLevel(str, Enum):
    """Axis along which requesters are distinguished."""

    API = "api"
    DEVICE = "device"
    USER = "user"
    IP = "ip"


class TimeUnit(str, Enum):
    """Unit in which window lengths ("decay units") are expressed."""

    SECONDS = "seconds"
    MINUTES = "minutes"


class FailMode(str, Enum):
    """What to do with a request when the shared store is unreachable."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class RateRule:
    """Rate rule resolved for a single request.

    Attributes:
        window_units: Window length in decay units (see TimeUnit).
        max_attempts: Attempts allowed per window.
        level: Limiting level used to derive the signature.
        api_name: API name the rule was resolved for.
    """

    window_units: int
    max_attempts: int
    level: LimitLevel
    api_name: str = ""


@dataclass(frozen=True)
class RequesterContext:
    """Everything known about who is calling, threaded explicitly.

    Attributes:
        user_id: Authenticated user identifier, None for anonymous callers.
        client_ip: Client IP address as seen by the service.
        headers: Inbound request headers (lower-cased names).
        params: Query parameters of the request.
    """

    user_id: str | None
    client_ip: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)


class ThrottleRejection(BaseModel):
    """Machine-consumable body returned when a request is throttled."""

    status: int = Field(0, description="Always 0 for a rejected request")
    code: int = Field(..., description="Configured numeric error code")
    msg: str = Field(..., description="Human-readable message")


class ThrottleStatus(BaseModel):
    """Administrative view of the limiter state for one signature."""

    signature: str
    attempts: int = Field(..., ge=0)
    window_open: bool
    available_in: int = Field(..., ge=0)


class ThrottleClearResponse(BaseModel):
    """Acknowledgement of an administrative reset."""

    signature: str
    cleared: bool = True
