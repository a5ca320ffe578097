"""Derive the cache-key signature identifying "who" is being limited.

Fields are length-prefixed before hashing (``<len>:<value>``), with ``~``
standing for an absent value, so no two different field tuples can encode to
the same byte string regardless of the characters they contain.
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from throttler.core.config import ThrottleConfig
from throttler.schemas.throttle import LimitLevel, RequesterContext

ABSENT = "~"


def encode_fields(fields: Iterable[str | None]) -> bytes:
    """Encode fields unambiguously.

    Examples:
        >>> encode_fields(["GET", None, "/a|b"])
        b'3:GET~4:/a|b'
    """
    parts = []
    for value in fields:
        if value is None:
            parts.append(ABSENT)
        else:
            parts.append(f"{len(value)}:{value}")
    return "".join(parts).encode("utf-8")


def digest(fields: Iterable[str | None]) -> str:
    """Fixed-length (64 hex chars) SHA-256 digest of the encoded fields."""
    return hashlib.sha256(encode_fields(fields)).hexdigest()


class SignatureResolver:
    """Build signatures for requests according to their limiting level."""

    def __init__(self, config: ThrottleConfig) -> None:
        self._config = config

    def device_id(self, requester: RequesterContext) -> str | None:
        return requester.params.get(self._config.udid_name) or None

    def fields(
        self,
        method: str,
        path: str,
        level: LimitLevel,
        requester: RequesterContext,
    ) -> list[str | None]:
        """Return the identity fields combined for ``level``.

        The level itself is the first field so that, e.g., an ``ip`` and a
        ``user`` signature never collide for an anonymous caller.
        """
        method = method.upper()
        level = LimitLevel(level)

        if level is LimitLevel.API:
            identity: list[str | None] = []
        elif level is LimitLevel.DEVICE:
            identity = [requester.user_id, requester.client_ip, self.device_id(requester)]
        elif level is LimitLevel.USER:
            identity = [requester.user_id, requester.client_ip]
        else:
            identity = [requester.client_ip]

        return [level.value, method, *identity, path]

    def resolve(
        self,
        method: str,
        path: str,
        level: LimitLevel,
        requester: RequesterContext,
    ) -> str:
        return digest(self.fields(method, path, level, requester))
