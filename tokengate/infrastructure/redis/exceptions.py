"""
Store Infrastructure Exceptions

Exceptions for the shared ordered-set store.
Transport failures are propagated to the caller, never retried here.
"""

from typing import Optional

from ...domain.limits.exceptions import LimiterException


class StoreException(LimiterException):
    """Base exception for store-related errors."""


class StoreUnavailableException(StoreException):
    """Raised when the store connection fails or is lost."""

    def __init__(
        self,
        message: str = "Window store unavailable",
        host: Optional[str] = None,
        port: Optional[int] = None,
        original_error: Optional[Exception] = None,
        error_code: str = "STORE_UNAVAILABLE",
    ):
        details = {}
        if host:
            details["host"] = host
        if port:
            details["port"] = port
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code=error_code, details=details)
        if original_error:
            self.__cause__ = original_error


class StoreOperationTimeoutException(StoreUnavailableException):
    """Raised when a store operation times out."""

    def __init__(
        self,
        operation: str,
        timeout_seconds: Optional[float] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Window store operation '{operation}' timed out"
            + (f" after {timeout_seconds}s" if timeout_seconds else ""),
            original_error=original_error,
            error_code="STORE_TIMEOUT",
        )
        self.details["operation"] = operation
        if timeout_seconds:
            self.details["timeout_seconds"] = timeout_seconds


class StoreCircuitOpenException(StoreUnavailableException):
    """Raised when the store circuit breaker is open."""

    def __init__(
        self, message: str = "Window store circuit breaker is open - failing fast"
    ):
        super().__init__(message=message, error_code="STORE_CIRCUIT_OPEN")
        self.details["service_status"] = "unavailable"


class StoreConfigurationException(StoreException):
    """Raised when store configuration is invalid."""

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
            message=message, error_code="STORE_CONFIGURATION_ERROR", details=details
        )
        if original_error:
            self.__cause__ = original_error
