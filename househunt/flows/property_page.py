"""Flow for a listing page protected by an anti-automation challenge."""

from enum import StrEnum

from config.settings import GlobalConfig
from househunt.browser import BrowserSession, Readiness
from househunt.deadline import Deadline
from househunt.exceptions import HttpStatusError
from househunt.flows.base import SiteFlow
from househunt.models import RenderedPage


# Statuses the listing host uses for its challenge interstitial.
CHALLENGE_STATUSES = frozenset({403, 429})


def is_content_sufficient(html: str, markers: list[str], min_bytes: int) -> bool:
    """Heuristic for a fully rendered listing.

    Any domain marker, or a document at least ``min_bytes`` long, counts.
    """
    if any(marker in html for marker in markers):
        return True
    return len(html.encode("utf-8")) >= min_bytes


class PropertyPageFlow(SiteFlow[RenderedPage]):
    """Render a realestate.com.au listing past its challenge page.

    Thin content is re-sampled once after a settle delay; the longer of
    the two documents is returned. An insufficient document is reported
    through ``RenderedPage.sufficient`` rather than raised.
    """

    class State(StrEnum):
        NAVIGATING = "navigating"
        AWAITING_CHALLENGE = "awaiting_challenge"
        RENDERING = "rendering"
        VERIFYING = "verifying"
        DONE = "done"

    def __init__(self, url: str, config: GlobalConfig | None = None) -> None:
        super().__init__(config)
        self.url = url

    @property
    def name(self) -> str:
        return "property_page"

    async def run(self, session: BrowserSession, deadline: Deadline) -> RenderedPage:
        self.transition(self.State.NAVIGATING)
        status = await session.navigate(
            self.url, Readiness.CONTENT_LOADED, deadline, allowed_statuses=CHALLENGE_STATUSES
        )
        self.record("navigate", self.url, self.State.AWAITING_CHALLENGE)
        challenged = status in CHALLENGE_STATUSES
        if challenged:
            self.log.info("Challenge page served", url=self.url, status=status)

        self.transition(self.State.AWAITING_CHALLENGE)
        challenge_budget = deadline.remaining_ms(self.config.challenge_timeout_ms)
        resolved = await session.await_challenge_resolution(challenge_budget)
        if challenged and not resolved:
            raise HttpStatusError(url=self.url, status=status)
        self.record("wait", "challenge navigation", self.State.RENDERING)

        self.transition(self.State.RENDERING)
        idle = await session.wait_for_readiness(Readiness.NETWORK_IDLE, deadline)
        if not idle:
            self.log.info("Network never went idle, continuing", url=session.current_url)
        self.record("wait", str(Readiness.NETWORK_IDLE), self.State.VERIFYING)

        self.transition(self.State.VERIFYING)
        html = await session.content()
        self.record("extract", "document", self.State.DONE)
        sufficient = self._sufficient(html)

        if not sufficient:
            self.log.info(
                "Content looks incomplete, re-sampling",
                length=len(html),
                delay_sec=self.config.property_resample_delay_sec,
            )
            await session.pause(self.config.property_resample_delay_sec, deadline)
            resampled = await session.content()
            self.record("extract", "document", self.State.DONE)
            if len(resampled) > len(html):
                html = resampled
            sufficient = self._sufficient(html)
            if not sufficient:
                self.log.warning("Returning best available content", url=session.current_url, length=len(html))

        self.transition(self.State.DONE)
        return RenderedPage(url=session.current_url, html=html, sufficient=sufficient)

    def _sufficient(self, html: str) -> bool:
        return is_content_sufficient(
            html, self.config.property_content_markers, self.config.property_min_content_bytes
        )
