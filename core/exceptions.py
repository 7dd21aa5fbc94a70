"""
Custom exceptions for the transfer pipeline with structured error context.

This module provides the exception hierarchy used throughout the transfer
pipeline. Each exception includes context information for debugging and
for the per-unit failure entries of the transfer summary.

Exception Hierarchy:
    TransferException (base)
    ├── ConfigError
    ├── UpstreamError
    │   ├── FetchError
    │   ├── NetworkError
    │   ├── RateLimitError
    │   ├── AuthenticationError
    │   └── ResourceNotFoundError
    ├── ParseError
    ├── SubmitError
    └── RetryableError / NonRetryableError (mixins)

Only ConfigError is fatal to a whole run. Everything else is local to one
unit of work (or, for SubmitError, to one batch).
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class TransferException(Exception):
    """
    Base exception for all transfer-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (org unit, url, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        context = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigError(TransferException):
    """
    Exception raised when the transfer configuration is invalid.

    Raised before any network call is issued. Fatal to the whole run.

    Context should include:
        - field_name: The configuration field that failed validation
        - field_value: The rejected value
    """
    pass


# ============================================================================
# Upstream (HTTP) Errors
# ============================================================================

class UpstreamError(TransferException):
    """
    Exception raised when a call to a DHIS2 instance fails.

    Attributes:
        status_code: HTTP status code (if a response was received)
        payload: Parsed JSON body of the error response (if any)

    Context should include:
        - url: The endpoint that failed
        - retry_count: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.payload = payload
        if status_code is not None:
            self.context["status_code"] = status_code


class FetchError(UpstreamError):
    """
    Exception raised when extracting data values for a unit of work fails.

    Context should include:
        - org_unit: Org unit id of the unit of work
        - data_sets: Dataset ids requested
    """
    pass


# ============================================================================
# Payload Errors
# ============================================================================

class ParseError(TransferException):
    """
    Exception raised when an extracted payload is structurally unreadable.

    Context should include:
        - org_unit: Org unit id of the unit of work
        - payload_format: csv or json
    """
    pass


class SubmitError(TransferException):
    """
    Exception raised when the destination rejects a batch.

    Attributes:
        report: Import report salvaged from the error body, if any
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        report: Optional[Any] = None
    ):
        super().__init__(message, context, original_exception)
        self.report = report


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(TransferException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 503)
    """
    pass


class NonRetryableError(TransferException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Specific Upstream Errors
# ============================================================================

class NetworkError(RetryableError, UpstreamError):
    """Network-related errors that were retried until exhaustion."""
    pass


class RateLimitError(RetryableError, UpstreamError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception, status_code=429)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, UpstreamError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, UpstreamError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass
