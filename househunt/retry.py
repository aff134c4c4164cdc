"""Bounded retries with exponential backoff for flows and plain operations.

Each flow attempt runs in its own freshly opened BrowserSession under its
own Deadline. When an attempt fails, a full-page screenshot is captured
best-effort while the failing page is still open; the session is then
released before the backoff sleep. Failures that retrying cannot fix
(validation, redirect loops, permanent HTTP statuses) propagate at once.
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from config.settings import GlobalConfig, get_config
from househunt.browser import BrowserSession
from househunt.deadline import Deadline
from househunt.exceptions import (
    HttpStatusError,
    RecordValidationError,
    RedirectLoopError,
    RetryExhaustedError,
)
from househunt.flows.base import SiteFlow
from househunt.logger import flow_logger
from househunt.models import FlowResult

if TYPE_CHECKING:
    from loguru import Logger

T = TypeVar("T")

SNAPSHOT_TIMEOUT_SEC = 10.0

SessionFactory = Callable[[GlobalConfig], AbstractAsyncContextManager[BrowserSession]]


def exponential_backoff(base_delay: float) -> Callable[[int], float]:
    """Backoff of ``2**attempt * base_delay`` for the 1-based failed attempt."""

    def backoff(attempt: int) -> float:
        return (2**attempt) * base_delay

    return backoff


def default_is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (RecordValidationError, RedirectLoopError)):
        return False
    if isinstance(exc, HttpStatusError):
        return exc.is_transient
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings shared by every flow.

    Attributes:
        max_attempts: Total attempts including the first.
        backoff: Seconds to sleep after the given failed attempt.
        is_retryable: Predicate deciding whether an error is worth retrying.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: exponential_backoff(2.0))
    is_retryable: Callable[[BaseException], bool] = default_is_retryable

    @classmethod
    def from_config(cls, config: GlobalConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            backoff=exponential_backoff(config.retry_base_delay_sec),
        )


class RetryOrchestrator:
    """Runs flows and coroutines under a RetryPolicy.

    Attributes:
        config: GlobalConfig instance.
        policy: The retry policy applied to every run.

    Example:
        orchestrator = RetryOrchestrator()
        result = await orchestrator.run_with_retry(NaplanLookupFlow("Balwyn High School"))
        print(result.payload, result.attempts)
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        policy: RetryPolicy | None = None,
        session_factory: SessionFactory | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or get_config()
        self.policy = policy or RetryPolicy.from_config(self.config)
        self._session_factory = session_factory or BrowserSession.create
        self._sleep = sleep

    async def run_with_retry(self, flow: SiteFlow[T], max_attempts: int | None = None) -> FlowResult:
        """Run ``flow`` until it succeeds or attempts are exhausted.

        Returns:
            FlowResult with the payload and the number of attempts used.

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error.
            HouseHuntError: The original error when it is not retryable.
        """
        attempts_allowed = max_attempts or self.policy.max_attempts
        last_diagnostic: str | None = None
        attempt = 0

        while True:
            attempt += 1
            attempt_log = flow_logger(flow.name, attempt=attempt)
            deadline = Deadline.after(flow.timeout_sec)
            diagnostic: str | None = None
            attempt_log.info("Flow attempt", max_attempts=attempts_allowed)

            try:
                async with self._session_factory(self.config) as session:
                    try:
                        payload = await flow.execute(session, deadline, attempt_log)
                    except Exception:
                        diagnostic = await self._capture_diagnostics(session, flow.name, attempt_log)
                        raise
            except Exception as exc:
                last_diagnostic = diagnostic or last_diagnostic
                if not self.policy.is_retryable(exc):
                    attempt_log.error("Flow failed with non-retryable error", error_type=type(exc).__name__)
                    raise
                if attempt >= attempts_allowed:
                    attempt_log.error("Final attempt failed", error_type=type(exc).__name__, error=str(exc))
                    raise RetryExhaustedError(
                        flow=flow.name,
                        attempts=attempts_allowed,
                        last_error=exc,
                        diagnostic_path=last_diagnostic,
                    ) from exc
                await self._back_off(attempt_log, attempt, exc)
                continue

            return FlowResult(
                flow=flow.name,
                success=True,
                payload=payload,
                attempts=attempt,
                diagnostic_path=last_diagnostic,
                steps=list(flow.steps),
            )

    async def run_callable_with_retry(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
    ) -> T:
        """Apply the retry policy to a session-less coroutine factory.

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error.
        """
        attempts_allowed = max_attempts or self.policy.max_attempts
        attempt = 0

        while True:
            attempt += 1
            attempt_log = flow_logger(name, attempt=attempt)
            try:
                return await operation()
            except Exception as exc:
                if not self.policy.is_retryable(exc):
                    raise
                if attempt >= attempts_allowed:
                    attempt_log.error("Final attempt failed", error_type=type(exc).__name__, error=str(exc))
                    raise RetryExhaustedError(flow=name, attempts=attempts_allowed, last_error=exc) from exc
                await self._back_off(attempt_log, attempt, exc)

    async def _back_off(self, attempt_log: "Logger", attempt: int, exc: BaseException) -> None:
        delay = self.policy.backoff(attempt)
        attempt_log.warning(
            "Attempt failed, backing off",
            delay_sec=delay,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        await self._sleep(delay)

    async def _capture_diagnostics(
        self, session: BrowserSession, flow_name: str, attempt_log: "Logger"
    ) -> str | None:
        """Screenshot the failing page; failures here are logged and swallowed."""
        prefix = f"{self.config.diagnostics_prefix}-{flow_name}"
        try:
            async with asyncio.timeout(SNAPSHOT_TIMEOUT_SEC):
                path = await session.capture_snapshot(prefix)
        except Exception as exc:
            attempt_log.warning("Diagnostic capture failed", error=str(exc))
            return None
        attempt_log.info("Diagnostic snapshot captured", path=str(path))
        return str(path)
