"""Unit tests for rule and signature resolution."""

from typing import Any

import pytest

from throttler.core.config import ApiLimitRule, ThrottleConfig, ThrottleSettings
from throttler.schemas.throttle import LimitLevel, RequesterContext
from throttler.services.rule_resolver import RuleResolver
from throttler.services.signature_resolver import SignatureResolver, digest, encode_fields


def build_config(**overrides: Any) -> ThrottleConfig:
    return ThrottleConfig.from_settings(ThrottleSettings(**overrides))


ALICE = RequesterContext(user_id="alice", client_ip="10.0.0.1", params={"mid": "dev-1"})


class TestRuleResolver:
    def test_get_and_post_defaults(self) -> None:
        resolver = RuleResolver(build_config())

        get_rule = resolver.resolve("GET", "/api/center/list")
        post_rule = resolver.resolve("post", "/api/center/list")

        assert (get_rule.window_units, get_rule.max_attempts) == (1, 10)
        assert (post_rule.window_units, post_rule.max_attempts) == (2, 1)
        assert get_rule.level is LimitLevel.USER

    def test_unknown_method_uses_global_default(self) -> None:
        resolver = RuleResolver(build_config(default_rate=(5, 3)))

        rule = resolver.resolve("DELETE", "/x")

        assert (rule.window_units, rule.max_attempts) == (5, 3)

    def test_pair_override_keeps_default_level(self) -> None:
        config = build_config(api_limit={"/api/center/demo_api_demo1": (1, 20)})

        rule = RuleResolver(config).resolve("POST", "/api/center/demo_api_demo1")

        assert (rule.window_units, rule.max_attempts) == (1, 20)
        assert rule.level is LimitLevel.USER

    def test_override_with_level(self) -> None:
        config = build_config(
            limit_level="ip",
            api_limit={
                "/api/center/demo_api_demo2": ApiLimitRule(limit_level="api", rate=(1, 20)),
            },
        )

        rule = RuleResolver(config).resolve("GET", "/api/center/demo_api_demo2")

        assert rule.level is LimitLevel.API
        assert rule.max_attempts == 20
        assert rule.api_name == "/api/center/demo_api_demo2"

    def test_gateway_mode_extracts_and_normalizes_segment(self) -> None:
        config = build_config(api_gateway=True, api_limit={"user_info": (3, 4)})
        resolver = RuleResolver(config)

        assert resolver.api_name("/gw/v1/app/user.info") == "user_info"
        rule = resolver.resolve("GET", "/gw/v1/app/user.info")
        assert (rule.window_units, rule.max_attempts) == (3, 4)

    @pytest.mark.parametrize("path", ["/", "/gw", "/gw/v1/app", "/gw/v1/app/", ""])
    def test_gateway_mode_short_path_falls_back_to_raw_path(self, path: str) -> None:
        resolver = RuleResolver(build_config(api_gateway=True))

        assert resolver.api_name(path) == path

    def test_gateway_segment_index_is_configurable(self) -> None:
        resolver = RuleResolver(build_config(api_gateway=True, gateway_segment_index=2))

        assert resolver.api_name("/svc/order.create/extra") == "order_create"


class TestSignatureResolver:
    def test_deterministic_and_fixed_length(self) -> None:
        resolver = SignatureResolver(build_config())

        first = resolver.resolve("GET", "/a", LimitLevel.USER, ALICE)
        second = resolver.resolve("get", "/a", LimitLevel.USER, ALICE)
        long_path = resolver.resolve("GET", "/a" * 500, LimitLevel.USER, ALICE)

        assert first == second
        assert len(first) == len(long_path) == 64

    @pytest.mark.parametrize(
        ("level", "expected"),
        [
            (LimitLevel.API, ["api", "GET", "/a"]),
            (LimitLevel.IP, ["ip", "GET", "10.0.0.1", "/a"]),
            (LimitLevel.USER, ["user", "GET", "alice", "10.0.0.1", "/a"]),
            (LimitLevel.DEVICE, ["device", "GET", "alice", "10.0.0.1", "dev-1", "/a"]),
        ],
    )
    def test_fields_per_level(self, level: LimitLevel, expected: list[str]) -> None:
        resolver = SignatureResolver(build_config())

        assert resolver.fields("GET", "/a", level, ALICE) == expected

    def test_device_id_comes_from_configured_parameter(self) -> None:
        resolver = SignatureResolver(build_config(udid_name="udid"))
        requester = RequesterContext(user_id=None, client_ip="1.1.1.1", params={"udid": "x"})

        assert resolver.device_id(requester) == "x"
        assert resolver.device_id(ALICE) is None

    def test_api_level_ignores_identity(self) -> None:
        resolver = SignatureResolver(build_config())
        bob = RequesterContext(user_id="bob", client_ip="10.9.9.9")

        assert resolver.resolve("GET", "/a", "api", ALICE) == resolver.resolve(
            "GET", "/a", "api", bob
        )

    @pytest.mark.parametrize(
        "other",
        [
            RequesterContext(user_id="bob", client_ip="10.0.0.1", params={"mid": "dev-1"}),
            RequesterContext(user_id="alice", client_ip="10.0.0.2", params={"mid": "dev-1"}),
            RequesterContext(user_id="alice", client_ip="10.0.0.1", params={"mid": "dev-2"}),
            RequesterContext(user_id=None, client_ip="10.0.0.1", params={"mid": "dev-1"}),
        ],
    )
    def test_changing_any_identity_field_changes_signature(self, other: RequesterContext) -> None:
        resolver = SignatureResolver(build_config())

        assert resolver.resolve("GET", "/a", "device", ALICE) != resolver.resolve(
            "GET", "/a", "device", other
        )

    def test_anonymous_differs_from_empty_user_id(self) -> None:
        assert digest([None, "1.1.1.1"]) != digest(["", "1.1.1.1"])

    def test_separator_inside_values_cannot_shift_fields(self) -> None:
        # With naive "|" joins both would hash "GET|a|b|/p"
        assert encode_fields(["GET", "a|b", "/p"]) != encode_fields(["GET", "a", "b|/p"])
        assert digest(["GET", "a|b", "/p"]) != digest(["GET", "a", "b|/p"])
        assert digest(["ab", "c"]) != digest(["a", "bc"])

    def test_levels_do_not_collide(self) -> None:
        resolver = SignatureResolver(build_config())
        requester = RequesterContext(user_id=None, client_ip="10.0.0.1")

        assert resolver.resolve("GET", "/a", "ip", requester) != resolver.resolve(
            "GET", "/a", "api", requester
        )
