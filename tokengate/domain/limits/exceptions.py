"""
Limiter Domain Exceptions

Errors raised synchronously to the caller of a limiter operation.
None of them are logged-and-swallowed inside the library.
"""

from typing import Optional, Any, Dict


class LimiterException(Exception):
    """Base exception for all limiter errors.

    Carries a stable machine-readable code and structured details
    so callers can branch on the failure without parsing messages.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class UnknownLimiterKeyException(LimiterException):
    """Raised when a resource is not present in the merged registry."""

    def __init__(self, resource: str, subaccount: str):
        super().__init__(
            message=f"Unknown limiter key: resource={resource!r}, subaccount={subaccount!r}",
            error_code="UNKNOWN_LIMITER_KEY",
            details={"resource": resource, "subaccount": subaccount},
        )


class TokenLimitExceededException(LimiterException):
    """Raised when admitting an input would surpass the token window limit."""

    def __init__(
        self,
        resource: str,
        subaccount: str,
        current: int,
        cost: int,
        limit: int,
        interval: str,
    ):
        super().__init__(
            message=(
                f"Input will surpass token rate limit for {resource}/{subaccount}: "
                f"{current} + {cost} > {limit} per {interval}"
            ),
            error_code="TOKEN_LIMIT_EXCEEDED",
            details={
                "resource": resource,
                "subaccount": subaccount,
                "current": current,
                "cost": cost,
                "limit": limit,
                "interval": interval,
            },
        )


class RequestLimitExceededException(LimiterException):
    """Raised when admitting an input would surpass the request window limit."""

    def __init__(
        self,
        resource: str,
        subaccount: str,
        current: int,
        limit: int,
        interval: str,
    ):
        super().__init__(
            message=(
                f"Request will surpass request rate limit for {resource}/{subaccount}: "
                f"{current} + 1 > {limit} per {interval}"
            ),
            error_code="REQUEST_LIMIT_EXCEEDED",
            details={
                "resource": resource,
                "subaccount": subaccount,
                "current": current,
                "limit": limit,
                "interval": interval,
            },
        )


class InvalidDeregistrationException(LimiterException):
    """Raised when releasing a record that is not an input reservation."""

    def __init__(self, record_id: str, kind: str):
        super().__init__(
            message=f"Can only deregister input records, got {kind} record {record_id}",
            error_code="INVALID_DEREGISTRATION",
            details={"record_id": record_id, "kind": kind},
        )


class LimiterConfigurationException(LimiterException):
    """Raised when quota tables or overrides are malformed."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="LIMITER_CONFIGURATION_ERROR", details=details
        )
        if original_error:
            self.__cause__ = original_error
