"""Site flows modeled as explicit state machines.

A SiteFlow drives one BrowserSession through an ordered set of states to
reach and extract data from a single target site. Flows never open or
close sessions themselves: the RetryOrchestrator hands each attempt a
fresh, exclusive session and releases it afterwards. Every state change
and action is logged and recorded as a FlowStep for diagnostics.

Adding a site means writing one new subclass; the orchestration and
session lifecycle stay untouched.
"""

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from config.settings import GlobalConfig, get_config
from househunt.browser import BrowserSession
from househunt.deadline import Deadline
from househunt.logger import flow_logger
from househunt.models import FlowStep

if TYPE_CHECKING:
    from loguru import Logger

T = TypeVar("T")


class SiteFlow(ABC, Generic[T]):
    """Abstract base class for per-site automation flows.

    Attributes:
        config: GlobalConfig instance for selectors and timeouts.
        state: Current state, None before the first transition.
        steps: Actions executed during the current attempt.
        log: Logger bound to the flow name, attempt and current state.

    Type Parameters:
        T: Payload type returned by a successful run.

    Example:
        class ExampleFlow(SiteFlow[str]):
            class State(StrEnum):
                NAVIGATING = "navigating"
                DONE = "done"

            async def run(self, session, deadline) -> str:
                self.transition(self.State.NAVIGATING)
                ...
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self.state: StrEnum | None = None
        self.steps: list[FlowStep] = []
        self.log: "Logger" = flow_logger(self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable flow name used in logs and diagnostics."""
        ...

    @property
    def timeout_sec(self) -> float:
        """Deadline for one attempt of this flow."""
        return self.config.flow_timeout_sec

    @abstractmethod
    async def run(self, session: BrowserSession, deadline: Deadline) -> T:
        """Drive ``session`` through the flow's states.

        Args:
            session: Open session owned by this attempt only.
            deadline: Deadline of the attempt; every wait derives from it.

        Returns:
            The extracted payload.
        """
        ...

    async def execute(self, session: BrowserSession, deadline: Deadline, run_log: "Logger | None" = None) -> T:
        """Reset per-attempt state and run the flow.

        ``run_log`` carries the caller's correlation context (the
        orchestrator binds the attempt number); without it the flow binds
        its own name only.
        """
        self.state = None
        self.steps = []
        self.log = run_log or flow_logger(self.name)
        self.log.info("Flow started", timeout_sec=round(deadline.remaining(), 1))
        try:
            payload = await self.run(session, deadline)
        except Exception as exc:
            self.log.warning("Flow failed", error_type=type(exc).__name__, error=str(exc))
            raise
        self.log.info("Flow completed", steps=len(self.steps))
        return payload

    def transition(self, state: StrEnum) -> None:
        """Move to ``state`` and rebind the run logger to it."""
        self.log.debug(
            "Flow state change", previous=str(self.state) if self.state else None, next_state=str(state)
        )
        self.state = state
        self.log = self.log.bind(state=str(state))

    def record(self, action: str, target: str, expected_state: StrEnum) -> None:
        """Record an executed action and the state it should lead to."""
        self.steps.append(FlowStep(action=action, target=target, expected_state=str(expected_state)))
