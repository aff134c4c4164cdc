"""NAPLAN results lookup on myschool.edu.au.

Reaching the results requires accepting the terms of use, searching for
the school, opening its profile and then loading the profile's
``/naplan/results`` page. The results table is parsed from the rendered
HTML by ``househunt.extraction.parse_assessment_tables``.
"""

from enum import StrEnum

from playwright.async_api import ElementHandle

from config.settings import GlobalConfig
from househunt.browser import BrowserSession, Readiness
from househunt.deadline import Deadline
from househunt.exceptions import SelectorNotFoundError
from househunt.extraction import parse_assessment_tables
from househunt.flows.base import SiteFlow
from househunt.models import AssessmentScoreSet


PROFILE_AFFORDANCE_TEXT = "view school profile"
PROFILE_CANDIDATES_SELECTOR = "a, button"

SCROLL_INTO_VIEW_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (el) el.scrollIntoView({ behavior: 'instant', block: 'center' });
    return el !== null;
}
"""

BUTTON_ENABLED_JS = """
(selector) => {
    const btn = document.querySelector(selector);
    return btn !== null && !btn.disabled;
}
"""

ON_PROFILE_PAGE_JS = "() => window.location.pathname.includes('/school/')"


def results_url(profile_url: str) -> str:
    """URL of the results page for a school profile URL."""
    return profile_url.rstrip("/") + "/naplan/results"


def query_token(query: str) -> str:
    """Leading word of a search query, lowercased."""
    parts = query.lower().split()
    return parts[0] if parts else ""


class NaplanLookupFlow(SiteFlow[AssessmentScoreSet]):
    """Fetch the most recent NAPLAN averages for a named school.

    When the results list offers no explicit profile affordance, the
    first school link whose text contains the query's leading word is
    followed. Schools sharing that word are therefore indistinguishable;
    callers should pass the full school name.
    """

    class State(StrEnum):
        NAVIGATING = "navigating"
        ACCEPTING_TERMS = "accepting_terms"
        SEARCHING = "searching"
        AWAITING_RESULTS = "awaiting_results"
        SELECTING_PROFILE = "selecting_profile"
        NAVIGATING_TO_RESULTS = "navigating_to_results"
        EXTRACTING = "extracting"
        DONE = "done"

    def __init__(self, school_name: str, config: GlobalConfig | None = None) -> None:
        super().__init__(config)
        self.school_name = school_name

    @property
    def name(self) -> str:
        return "naplan_lookup"

    async def run(self, session: BrowserSession, deadline: Deadline) -> AssessmentScoreSet:
        cfg = self.config

        self.transition(self.State.NAVIGATING)
        await session.navigate(cfg.naplan_url, Readiness.NETWORK_IDLE, deadline)
        self.record("navigate", cfg.naplan_url, self.State.ACCEPTING_TERMS)

        self.transition(self.State.ACCEPTING_TERMS)
        await self._accept_terms(session, deadline)

        self.transition(self.State.SEARCHING)
        await self._search(session, deadline)

        self.transition(self.State.AWAITING_RESULTS)
        await session.wait_for_readiness(Readiness.NETWORK_IDLE, deadline)
        self.record("wait", str(Readiness.NETWORK_IDLE), self.State.SELECTING_PROFILE)

        self.transition(self.State.SELECTING_PROFILE)
        profile = await self._find_profile_link(session)
        if profile is None:
            raise SelectorNotFoundError(
                selector=cfg.css_selector_school_link, url=session.current_url, step=str(self.state)
            )
        await profile.click()
        self.record("click", "school profile", self.State.NAVIGATING_TO_RESULTS)
        await session.wait_for_condition(ON_PROFILE_PAGE_JS, deadline, step=str(self.state))

        self.transition(self.State.NAVIGATING_TO_RESULTS)
        target = results_url(session.current_url)
        await session.navigate(target, Readiness.NETWORK_IDLE, deadline)
        self.record("navigate", target, self.State.EXTRACTING)

        self.transition(self.State.EXTRACTING)
        html = await session.extract("() => document.documentElement.outerHTML")
        self.record("extract", "results tables", self.State.DONE)
        scores = parse_assessment_tables(html)
        self.log.info(
            "Assessment results extracted",
            school=self.school_name,
            report_year=scores.year,
            has_scores=scores.has_scores,
        )

        self.transition(self.State.DONE)
        return scores

    async def _accept_terms(self, session: BrowserSession, deadline: Deadline) -> None:
        cfg = self.config
        await session.extract(SCROLL_INTO_VIEW_JS, cfg.css_selector_terms_checkbox)
        await session.click(cfg.css_selector_terms_label, deadline, step=str(self.state))
        self.record("click", cfg.css_selector_terms_label, self.State.ACCEPTING_TERMS)

        # The accept button stays disabled until the checkbox registers.
        await session.wait_for_condition(
            BUTTON_ENABLED_JS, deadline, arg=cfg.css_selector_terms_accept, step=str(self.state)
        )
        await session.click(cfg.css_selector_terms_accept, deadline, step=str(self.state))
        self.record("click", cfg.css_selector_terms_accept, self.State.SEARCHING)

    async def _search(self, session: BrowserSession, deadline: Deadline) -> None:
        cfg = self.config
        match = await session.query_first(cfg.naplan_search_selectors)
        if match is None:
            raise SelectorNotFoundError(
                selector=" | ".join(cfg.naplan_search_selectors),
                url=session.current_url,
                step=str(self.state),
            )
        selector, search_input = match
        await search_input.click(click_count=3)
        await session.type_into(search_input, self.school_name, deadline)
        self.record("type", selector, self.State.SEARCHING)

        try:
            await session.click(cfg.css_selector_search_button, deadline, step=str(self.state))
            self.record("click", cfg.css_selector_search_button, self.State.AWAITING_RESULTS)
        except SelectorNotFoundError:
            self.log.debug("Search button not found, submitting with Enter")
            await session.press("Enter")
            self.record("type", "Enter", self.State.AWAITING_RESULTS)

    async def _find_profile_link(self, session: BrowserSession) -> ElementHandle | None:
        for candidate in await session.query_all(PROFILE_CANDIDATES_SELECTOR):
            text = (await candidate.text_content() or "").strip().lower()
            if PROFILE_AFFORDANCE_TEXT in text:
                self.log.debug("Profile affordance found")
                return candidate

        token = query_token(self.school_name)
        for link in await session.query_all(self.config.css_selector_school_link):
            text = (await link.text_content() or "").strip()
            if token and token in text.lower():
                self.log.debug("Falling back to school link", link_text=text)
                return link
        return None
