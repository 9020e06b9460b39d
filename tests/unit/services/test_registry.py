"""
Rate-Limit Registry Tests

Unit tests for override resolution and quota lookup.
"""

import json

import pytest

from tokengate.domain.limits import (
    DEFAULT_RESOURCE_QUOTAS,
    LimiterConfigurationException,
    RateLimit,
    RateLimitInterval,
    ResourceQuota,
    UnknownLimiterKeyException,
)
from tokengate.services.limits import (
    RateLimitRegistry,
    load_overrides_file,
    resolve_overrides,
)

PROMO_OVERRIDES = {
    "gpt-3.5-turbo": {
        "promo": {
            "token": {"count": 300, "interval": "minute"},
            "request": {"count": 200, "interval": "minute"},
        }
    }
}


class TestRateLimitRegistry:
    """Test cases for RateLimitRegistry."""

    def test_default_lookup(self):
        """Test built-in quotas resolve for the default subaccount."""
        registry = RateLimitRegistry()

        quota = registry.resolve("gpt-3.5-turbo")
        assert quota.token.count == 90000
        assert quota.request.count == 3500
        assert "gpt-4" in registry
        assert len(registry.resources) == len(DEFAULT_RESOURCE_QUOTAS)

    def test_unknown_subaccount_falls_back_to_default(self):
        """Test subaccounts without overrides use the resource default."""
        registry = RateLimitRegistry()
        assert registry.resolve("gpt-4", "acme") == DEFAULT_RESOURCE_QUOTAS["gpt-4"]

    def test_unknown_resource_raises(self):
        """Test unknown resources are rejected."""
        registry = RateLimitRegistry()
        with pytest.raises(UnknownLimiterKeyException) as exc_info:
            registry.resolve("gpt-9", "default")
        assert exc_info.value.error_code == "UNKNOWN_LIMITER_KEY"

    def test_limit_getters(self):
        """Test token and request getters, None for unknown resources."""
        registry = RateLimitRegistry()
        assert registry.get_token_limit("gpt-4") == RateLimit(
            count=40000, interval=RateLimitInterval.MINUTE
        )
        assert registry.get_request_limit("gpt-4").count == 200
        assert registry.get_token_limit("gpt-9") is None
        assert registry.get_request_limit("gpt-9", "acme") is None

    def test_override_affects_only_its_pair(self):
        """Test a subaccount override leaves other pairs untouched."""
        registry = RateLimitRegistry(overrides=PROMO_OVERRIDES)

        assert registry.get_token_limit("gpt-3.5-turbo", "promo").count == 300
        assert registry.get_request_limit("gpt-3.5-turbo", "promo").count == 200
        assert registry.get_token_limit("gpt-3.5-turbo", "default").count == 90000
        assert registry.get_token_limit("gpt-3.5-turbo", "other").count == 90000
        assert registry.get_token_limit("gpt-3.5-turbo-0613", "promo").count == 90000

    def test_overrides_do_not_mutate_defaults(self):
        """Test building a registry leaves the default table intact."""
        RateLimitRegistry(overrides=PROMO_OVERRIDES)
        assert DEFAULT_RESOURCE_QUOTAS["gpt-3.5-turbo"].token.count == 90000
        assert RateLimitRegistry().get_token_limit("gpt-3.5-turbo", "promo").count == 90000

    def test_partial_override(self):
        """Test a single-field override keeps the other default."""
        registry = RateLimitRegistry(
            overrides={"gpt-4": {"acme": {"request": {"count": 5, "interval": "second"}}}}
        )
        quota = registry.resolve("gpt-4", "acme")
        assert quota.token.count == 40000
        assert quota.request.count == 5
        assert quota.request.interval is RateLimitInterval.SECOND

    def test_new_resource_via_override(self):
        """Test overrides can introduce resources when complete."""
        registry = RateLimitRegistry(
            overrides={
                "claude": {
                    "default": {
                        "token": {"count": 1000, "interval": "minute"},
                        "request": {"count": 10, "interval": "minute"},
                    }
                }
            }
        )
        assert "claude" in registry
        assert registry.resolve("claude", "someone").token.count == 1000

    def test_incomplete_new_resource_rejected(self):
        """Test a new resource needs both token and request limits."""
        with pytest.raises(LimiterConfigurationException):
            RateLimitRegistry(
                overrides={
                    "claude": {"default": {"token": {"count": 1000, "interval": "minute"}}}
                }
            )

    @pytest.mark.parametrize(
        "overrides",
        [
            {"gpt-4": {"acme": {"token": {"count": 0, "interval": "minute"}}}},
            {"gpt-4": {"acme": {"token": {"count": 10, "interval": "hour"}}}},
            {"gpt-4": {"acme": {}}},
            {"gpt-4": {"acme": 5}},
            {"gpt-4": ["acme"]},
            {"gpt-4": {"bad key": {"request": {"count": 1, "interval": "second"}}}},
        ],
    )
    def test_malformed_overrides_rejected(self, overrides):
        """Test malformed override entries raise configuration errors."""
        with pytest.raises(LimiterConfigurationException) as exc_info:
            RateLimitRegistry(overrides=overrides)
        assert exc_info.value.error_code == "LIMITER_CONFIGURATION_ERROR"

    def test_resolve_overrides_accepts_models(self):
        """Test overrides may be given as quota models."""
        quota = ResourceQuota(
            token=RateLimit(count=10, interval="second"),
            request=RateLimit(count=1, interval="second"),
        )
        resolved = resolve_overrides(DEFAULT_RESOURCE_QUOTAS, {"gpt-4": {"tiny": quota}})
        assert resolved[("gpt-4", "tiny")] == quota
        assert resolved[("gpt-4", "default")] == DEFAULT_RESOURCE_QUOTAS["gpt-4"]


class TestOverridesFile:
    """Test JSON override loading."""

    def test_load_file(self, tmp_path):
        """Test overrides load from a JSON file."""
        path = tmp_path / "limits.json"
        path.write_text(json.dumps(PROMO_OVERRIDES), encoding="utf-8")

        registry = RateLimitRegistry(overrides=load_overrides_file(path))
        assert registry.get_token_limit("gpt-3.5-turbo", "promo").count == 300

    def test_missing_file(self, tmp_path):
        """Test a missing file is a configuration error."""
        with pytest.raises(LimiterConfigurationException):
            load_overrides_file(tmp_path / "missing.json")

    def test_non_object_file(self, tmp_path):
        """Test the file must hold a JSON object."""
        path = tmp_path / "limits.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(LimiterConfigurationException):
            load_overrides_file(path)
