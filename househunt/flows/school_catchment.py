"""Catchment school lookup on findmyschool.vic.gov.au.

The locator is a single-page app whose form cannot be reset in place, so
every school type starts from a fresh full navigation. The sequence per
type is: choose the enrolment year, choose the school type, type the
address, pick the first suggestion, then read the result panel.
"""

from enum import StrEnum

from config.settings import GlobalConfig
from househunt.browser import BrowserSession, Readiness
from househunt.deadline import Deadline
from househunt.exceptions import SelectorNotFoundError
from househunt.extraction import join_address_segments, parse_school_html
from househunt.flows.base import SiteFlow
from househunt.models import SchoolCategory, SchoolRecord


RESULT_PANEL_JS = """
(selectors) => {
    const text = (el) => el ? el.textContent.trim() : null;
    return {
        name: text(document.querySelector(selectors.header)),
        addressParts: Array.from(document.querySelectorAll(selectors.addressParts))
            .map((el) => el.textContent.trim())
            .filter((part) => part.length > 0),
        distance: text(document.querySelector(selectors.distance)),
    };
}
"""


class SchoolCatchmentFlow(SiteFlow[dict[str, SchoolRecord]]):
    """Find the primary and secondary catchment schools for an address.

    Payload:
        ``{"primary": SchoolRecord, "secondary": SchoolRecord}``
    """

    class State(StrEnum):
        NAVIGATING = "navigating"
        SELECTING_YEAR = "selecting_year"
        SELECTING_TYPE = "selecting_type"
        ENTERING_ADDRESS = "entering_address"
        AWAITING_SUGGESTIONS = "awaiting_suggestions"
        SELECTING_SUGGESTION = "selecting_suggestion"
        AWAITING_RESULT = "awaiting_result"
        EXTRACTING = "extracting"
        DONE = "done"

    categories = (SchoolCategory.PRIMARY, SchoolCategory.SECONDARY)

    def __init__(self, address: str, config: GlobalConfig | None = None) -> None:
        super().__init__(config)
        self.address = address

    @property
    def name(self) -> str:
        return "school_catchment"

    async def run(self, session: BrowserSession, deadline: Deadline) -> dict[str, SchoolRecord]:
        results: dict[str, SchoolRecord] = {}
        for category in self.categories:
            results[str(category)] = await self._lookup(session, deadline, category)
        self.transition(self.State.DONE)
        return results

    async def _lookup(
        self, session: BrowserSession, deadline: Deadline, category: SchoolCategory
    ) -> SchoolRecord:
        cfg = self.config
        self.log.info("Looking up catchment school", address=self.address, school_type=str(category))

        self.transition(self.State.NAVIGATING)
        await session.navigate(cfg.school_finder_url, Readiness.NETWORK_IDLE, deadline)
        self.record("navigate", cfg.school_finder_url, self.State.SELECTING_YEAR)

        self.transition(self.State.SELECTING_YEAR)
        await session.select_option(
            cfg.css_selector_school_year, cfg.school_target_year, deadline, step=str(self.state)
        )
        self.record("click", cfg.css_selector_school_year, self.State.SELECTING_TYPE)

        self.transition(self.State.SELECTING_TYPE)
        label = cfg.school_type_labels.get(str(category), str(category).title())
        await session.select_option(cfg.css_selector_school_type, label, deadline, step=str(self.state))
        self.record("click", cfg.css_selector_school_type, self.State.ENTERING_ADDRESS)

        self.transition(self.State.ENTERING_ADDRESS)
        await session.type_humanlike(
            cfg.css_selector_school_address, self.address, deadline, step=str(self.state)
        )
        self.record("type", cfg.css_selector_school_address, self.State.AWAITING_SUGGESTIONS)

        self.transition(self.State.AWAITING_SUGGESTIONS)
        await session.wait_for_selector(cfg.css_selector_school_suggestion, deadline, step=str(self.state))
        self.record("wait", cfg.css_selector_school_suggestion, self.State.SELECTING_SUGGESTION)

        self.transition(self.State.SELECTING_SUGGESTION)
        await session.click(cfg.css_selector_school_suggestion, deadline, step=str(self.state))
        self.record("click", cfg.css_selector_school_suggestion, self.State.AWAITING_RESULT)

        self.transition(self.State.AWAITING_RESULT)
        await session.wait_for_selector(cfg.css_selector_school_header, deadline, step=str(self.state))
        self.record("wait", cfg.css_selector_school_header, self.State.EXTRACTING)

        self.transition(self.State.EXTRACTING)
        panel = await session.extract(
            RESULT_PANEL_JS,
            {
                "header": cfg.css_selector_school_header,
                "addressParts": cfg.css_selector_school_address_parts,
                "distance": cfg.css_selector_school_distance,
            },
        )
        self.record("extract", cfg.css_selector_school_header, self.State.DONE)
        if not panel or not panel.get("name"):
            raise SelectorNotFoundError(
                selector=cfg.css_selector_school_header, url=session.current_url, step=str(self.state)
            )

        details = parse_school_html(await session.content(), category)
        record = details.model_copy(
            update={
                "success": True,
                "name": " ".join(panel["name"].split()),
                "address": join_address_segments(panel.get("addressParts") or []) or details.address,
                "distance": panel.get("distance") or details.distance,
            }
        )
        self.log.info("Catchment school found", school_type=str(category), school=record.name)
        return record
