"""
Rate-Limit Registry

Resolves a (resource, subaccount) pair to its token and request limits.
Overrides are validated and resolved once at construction into an
immutable table; lookups never mutate it.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from ...constants import DEFAULT_SUBACCOUNT
from ...domain.limits.defaults import DEFAULT_RESOURCE_QUOTAS
from ...domain.limits.exceptions import (
    LimiterConfigurationException,
    UnknownLimiterKeyException,
)
from ...domain.limits.value_objects import (
    LimiterKey,
    QuotaOverride,
    RateLimit,
    ResourceQuota,
)

logger = structlog.get_logger(__name__)

OverrideValue = Union[QuotaOverride, ResourceQuota, Mapping[str, Any]]
OverrideTable = Mapping[str, Mapping[str, OverrideValue]]


def _parse_override(resource: str, subaccount: str, value: OverrideValue) -> QuotaOverride:
    if isinstance(value, QuotaOverride):
        return value
    if isinstance(value, ResourceQuota):
        return QuotaOverride(token=value.token, request=value.request)
    if not isinstance(value, Mapping):
        raise LimiterConfigurationException(
            message=f"Override for {resource}/{subaccount} must be a mapping",
            config_key=f"{resource}.{subaccount}",
        )
    try:
        return QuotaOverride.model_validate(dict(value))
    except ValidationError as e:
        raise LimiterConfigurationException(
            message=f"Malformed override for {resource}/{subaccount}: {e}",
            config_key=f"{resource}.{subaccount}",
            original_error=e,
        )


def resolve_overrides(
    defaults: Mapping[str, ResourceQuota],
    overrides: Optional[OverrideTable] = None,
) -> Dict[Tuple[str, str], ResourceQuota]:
    """
    Resolve a sparse override table against the defaults.

    Each override field replaces the default RateLimit for that one pair.
    Resources without defaults need both fields.

    Returns:
        Fully resolved quotas keyed by (resource, subaccount)

    Raises:
        LimiterConfigurationException: On any malformed entry
    """
    resolved: Dict[Tuple[str, str], ResourceQuota] = {}

    for resource, quota in defaults.items():
        if not isinstance(quota, ResourceQuota):
            raise LimiterConfigurationException(
                message=f"Default quota for {resource} must be a ResourceQuota",
                config_key=resource,
            )
        resolved[(resource, DEFAULT_SUBACCOUNT)] = quota

    for resource, subaccounts in (overrides or {}).items():
        if not isinstance(subaccounts, Mapping):
            raise LimiterConfigurationException(
                message=f"Overrides for {resource} must map subaccount -> quota",
                config_key=resource,
            )
        for subaccount, value in subaccounts.items():
            try:
                LimiterKey(resource, subaccount)
            except (TypeError, ValueError) as e:
                raise LimiterConfigurationException(
                    message=f"Invalid override key {resource}/{subaccount}: {e}",
                    config_key=f"{resource}.{subaccount}",
                    original_error=e,
                )
            override = _parse_override(resource, subaccount, value)
            try:
                resolved[(resource, subaccount)] = override.apply(defaults.get(resource))
            except ValueError as e:
                raise LimiterConfigurationException(
                    message=f"Cannot resolve override for {resource}/{subaccount}: {e}",
                    config_key=f"{resource}.{subaccount}",
                    original_error=e,
                )

    return resolved


def load_overrides_file(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """Read an override table from a JSON file."""
    file_path = Path(path)
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise LimiterConfigurationException(
            message=f"Cannot read override file {file_path}: {e}",
            config_key="LIMITER_OVERRIDES_FILE",
            original_error=e,
        )
    if not isinstance(data, dict):
        raise LimiterConfigurationException(
            message=f"Override file {file_path} must contain a JSON object",
            config_key="LIMITER_OVERRIDES_FILE",
        )
    return data


class RateLimitRegistry:
    """
    Read-only quota lookup.

    Subaccounts without an override fall back to the resource default.
    """

    def __init__(
        self,
        defaults: Mapping[str, ResourceQuota] = DEFAULT_RESOURCE_QUOTAS,
        overrides: Optional[OverrideTable] = None,
    ):
        self._quotas = MappingProxyType(resolve_overrides(defaults, overrides))
        self._resources = frozenset(resource for resource, _ in self._quotas)
        logger.debug(
            "rate_limit_registry.initialized",
            resources=len(self._resources),
            overrides=sum(len(v) for v in (overrides or {}).values()),
        )

    @property
    def resources(self) -> frozenset:
        return self._resources

    def __contains__(self, resource: str) -> bool:
        return resource in self._resources

    def _lookup(self, resource: str, subaccount: str) -> Optional[ResourceQuota]:
        quota = self._quotas.get((resource, subaccount))
        if quota is None:
            quota = self._quotas.get((resource, DEFAULT_SUBACCOUNT))
        return quota

    def resolve(
        self, resource: str, subaccount: str = DEFAULT_SUBACCOUNT
    ) -> ResourceQuota:
        """
        Resolve limits for a pair.

        Raises:
            UnknownLimiterKeyException: If the resource is not recognized
        """
        quota = self._lookup(resource, subaccount)
        if quota is None:
            raise UnknownLimiterKeyException(resource, subaccount)
        return quota

    def get_token_limit(
        self, resource: str, subaccount: str = DEFAULT_SUBACCOUNT
    ) -> Optional[RateLimit]:
        quota = self._lookup(resource, subaccount)
        return quota.token if quota else None

    def get_request_limit(
        self, resource: str, subaccount: str = DEFAULT_SUBACCOUNT
    ) -> Optional[RateLimit]:
        quota = self._lookup(resource, subaccount)
        return quota.request if quota else None
