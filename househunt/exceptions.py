"""Custom exception hierarchy for HouseHunt.

This module defines domain-specific exceptions for the acquisition
pipeline. Each exception carries a context dictionary (URL, selector,
status, attempt count) to aid debugging of unreliable external sites.

Retry semantics:
    - NetworkError, FetchTimeoutError, SelectorNotFoundError: retryable
    - HttpStatusError: retryable only for 429 and 5xx
    - RecordValidationError, RedirectLoopError: fatal, surfaced to caller
    - ChallengeTimeoutError: tolerated inside the browser engine
"""

from datetime import UTC, datetime
from typing import Any


class HouseHuntError(Exception):
    """Base exception for all HouseHunt errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class NetworkError(HouseHuntError):
    """Raised on transport-level failures (DNS, connection reset, TLS)."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            message=f"Network failure for '{url}': {reason}",
            context={"url": url, "reason": reason},
        )
        self.url = url


class NavigationError(NetworkError):
    """Raised when browser navigation fails for a non-HTTP reason."""


class HttpStatusError(HouseHuntError):
    """Raised when a response status falls outside 2xx.

    Attributes:
        status: The HTTP status code received.
    """

    def __init__(self, url: str, status: int) -> None:
        super().__init__(
            message=f"HTTP {status} from '{url}'",
            context={"url": url, "status": status},
        )
        self.url = url
        self.status = status

    @property
    def is_transient(self) -> bool:
        """Rate limiting and server errors are worth another attempt."""
        return self.status == 429 or self.status >= 500


class FetchTimeoutError(HouseHuntError):
    """Raised when any timeout layer (network, page readiness, UI step) expires."""

    def __init__(self, operation: str, timeout: float | None = None, url: str | None = None) -> None:
        super().__init__(
            message=f"Timed out during {operation}",
            context={"operation": operation, "timeout": timeout, "url": url},
        )
        self.operation = operation


class ChallengeTimeoutError(FetchTimeoutError):
    """Anti-automation challenge did not redirect in time.

    Tolerated by the browser engine: many pages render without a visible
    challenge, so this is logged and never escalated to the caller.
    """

    def __init__(self, url: str, timeout_ms: int) -> None:
        super().__init__(operation="challenge resolution", timeout=timeout_ms, url=url)


class RedirectLoopError(HouseHuntError):
    """Raised when a redirect chain exceeds the configured depth."""

    def __init__(self, url: str, max_redirects: int) -> None:
        super().__init__(
            message=f"Redirect chain from '{url}' exceeded {max_redirects} hops",
            context={"url": url, "max_redirects": max_redirects},
        )
        self.max_redirects = max_redirects


class SelectorNotFoundError(HouseHuntError):
    """Raised when no candidate selector matched on the current page.

    Fatal for the current attempt; may indicate an upstream layout change.
    """

    def __init__(self, selector: str, url: str, step: str | None = None) -> None:
        super().__init__(
            message=f"Selector '{selector}' matched zero elements - possible layout shift",
            context={"selector": selector, "url": url, "step": step},
        )
        self.selector = selector


class RecordValidationError(HouseHuntError):
    """Raised when an extracted record is missing required fields.

    Attributes:
        errors: Human-readable list of validation failures.
    """

    def __init__(self, errors: list[str], source: str | None = None) -> None:
        super().__init__(
            message=f"Record failed validation: {'; '.join(errors)}",
            context={"errors": errors, "source": source},
        )
        self.errors = errors


class RetryExhaustedError(HouseHuntError):
    """Raised when every retry attempt of a flow has failed.

    Attributes:
        attempts: Number of attempts made.
        last_error: The exception raised by the final attempt.
        diagnostic_path: Screenshot captured on the final failure, if any.
    """

    def __init__(
        self,
        flow: str,
        attempts: int,
        last_error: BaseException,
        diagnostic_path: str | None = None,
    ) -> None:
        super().__init__(
            message=f"{flow} failed after {attempts} attempt(s): {type(last_error).__name__}",
            context={
                "flow": flow,
                "attempts": attempts,
                "last_error": str(last_error),
                "diagnostic_path": diagnostic_path,
            },
        )
        self.flow = flow
        self.attempts = attempts
        self.last_error = last_error
        self.diagnostic_path = diagnostic_path


class PropertyAcquisitionError(HouseHuntError):
    """Raised when a listing could not be acquired by any route.

    Callers should offer manual entry of ``manual_entry_fields``.
    """

    MANUAL_ENTRY_FIELDS = (
        "address",
        "bedrooms",
        "bathrooms",
        "car_spaces",
        "land_size",
        "price_min",
        "price_max",
        "auction_date",
        "property_type",
    )

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            message=f"Could not acquire listing '{url}': {reason}",
            context={"url": url, "reason": reason},
        )
        self.url = url
        self.manual_entry_fields = list(self.MANUAL_ENTRY_FIELDS)


class BrowserInitializationError(HouseHuntError):
    """Raised when the browser instance fails to initialize.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes.
    """

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class LoggingInitializationError(HouseHuntError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
