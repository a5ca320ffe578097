"""Resolve the rate rule that applies to a request.

Precedence: explicit per-API override, then the HTTP method bucket, then the
global default. An override may also replace the default limiting level.
"""

from __future__ import annotations

import logging

from throttler.core.config import ThrottleConfig
from throttler.schemas.throttle import RateRule

logger = logging.getLogger(__name__)


class RuleResolver:
    """Map ``(method, path)`` to a RateRule using static configuration."""

    def __init__(self, config: ThrottleConfig) -> None:
        self._config = config

    def api_name(self, path: str) -> str:
        """Name under which per-API overrides are looked up.

        In gateway mode the name is a fixed segment of the path with dots
        normalized to underscores (``/a/b/c/user.info`` -> ``user_info``).
        Paths too short to carry that segment fall back to the raw path.
        """
        if not self._config.api_gateway:
            return path

        segments = path.split("/")
        index = self._config.gateway_segment_index
        if len(segments) <= index or not segments[index]:
            logger.debug(
                "rule_resolver.gateway_path_too_short",
                extra={"path": path, "segment_index": index},
            )
            return path

        return segments[index].replace(".", "_")

    def resolve(self, method: str, path: str) -> RateRule:
        name = self.api_name(path)
        level = self._config.limit_level

        override = self._config.overrides.get(name)
        if override is not None:
            return RateRule(
                window_units=override.window_units,
                max_attempts=override.max_attempts,
                level=override.level or level,
                api_name=name,
            )

        window_units, max_attempts = self._config.method_rates.get(
            method.lower(), self._config.default_rate
        )
        return RateRule(
            window_units=window_units,
            max_attempts=max_attempts,
            level=level,
            api_name=name,
        )
