"""Integration tests for the acquisition pipeline.

The orchestrator and fetcher are replaced by mocks returning scripted
FlowResults, so these tests cover how the pipeline routes requests,
falls back and applies the enrichment failure rules.
"""

from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import GlobalConfig
from househunt.cache import LookupCache
from househunt.exceptions import (
    NetworkError,
    PropertyAcquisitionError,
    RecordValidationError,
    RetryExhaustedError,
    SelectorNotFoundError,
)
from househunt.flows import NaplanLookupFlow, PropertyPageFlow, SchoolCatchmentFlow
from househunt.models import (
    FetchResult,
    FlowResult,
    PropertyRecord,
    RenderedPage,
    RoomCounts,
    SchoolCategory,
    SchoolRecord,
)
from househunt.pipeline import AcquisitionPipeline
from househunt.quality import BENCHMARK_NAPLAN

LISTING_URL = "https://www.realestate.com.au/property-house-vic-balwyn-1"


def exhausted(flow: str) -> RetryExhaustedError:
    return RetryExhaustedError(
        flow=flow, attempts=3, last_error=SelectorNotFoundError(selector="#x", url="https://example.test/")
    )


def schools_payload() -> dict[str, SchoolRecord]:
    return {
        "primary": SchoolRecord(
            school_type=SchoolCategory.PRIMARY, success=True, name="Balwyn Primary School"
        ),
        "secondary": SchoolRecord(
            school_type=SchoolCategory.SECONDARY, success=True, name="Balwyn High School"
        ),
    }


@pytest.fixture
def orchestrator() -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.run_with_retry = AsyncMock()
    orchestrator.run_callable_with_retry = AsyncMock()
    return orchestrator


@pytest.fixture
def pipeline(mock_config: GlobalConfig, orchestrator: MagicMock) -> AcquisitionPipeline:
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock()
    return AcquisitionPipeline(mock_config, orchestrator=orchestrator, fetcher=fetcher, cache=LookupCache())


def route_flows(orchestrator: MagicMock, handlers: dict[type, Callable[[Any], Any]]) -> None:
    """Dispatch run_with_retry by flow class."""

    async def run_with_retry(flow: Any, max_attempts: int | None = None) -> FlowResult:
        outcome = handlers[type(flow)](flow)
        if isinstance(outcome, Exception):
            raise outcome
        return FlowResult(flow=flow.name, success=True, payload=outcome)

    orchestrator.run_with_retry.side_effect = run_with_retry


@pytest.mark.integration
class TestAcquireProperty:
    """Test suite for listing acquisition and fallback."""

    @pytest.mark.asyncio
    async def test_browser_route(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock, listing_html_factory: Callable[..., str]
    ) -> None:
        html = listing_html_factory()
        route_flows(orchestrator, {PropertyPageFlow: lambda f: RenderedPage(url=f.url, html=html, sufficient=True)})

        record = await pipeline.acquire_property(LISTING_URL)

        assert record.address == "12 Example Street, Balwyn VIC 3103"
        assert record.rooms.bedrooms == 3
        pipeline.fetcher.fetch.assert_not_awaited()
        orchestrator.run_callable_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_plain_fetch(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock, listing_html_factory: Callable[..., str]
    ) -> None:
        route_flows(orchestrator, {PropertyPageFlow: lambda f: exhausted("property_page")})
        orchestrator.run_callable_with_retry.return_value = FetchResult(
            url=LISTING_URL, final_url=LISTING_URL, status=200, body=listing_html_factory()
        )

        record = await pipeline.acquire_property(LISTING_URL)

        assert record.rooms.bathrooms == 2
        name, operation = orchestrator.run_callable_with_retry.call_args.args
        assert name == "property_fetch"
        await operation()
        pipeline.fetcher.fetch.assert_awaited_once_with(LISTING_URL)

    @pytest.mark.asyncio
    async def test_all_routes_failing_offers_manual_entry(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        route_flows(orchestrator, {PropertyPageFlow: lambda f: exhausted("property_page")})
        orchestrator.run_callable_with_retry.side_effect = NetworkError(url=LISTING_URL, reason="refused")

        with pytest.raises(PropertyAcquisitionError) as exc_info:
            await pipeline.acquire_property(LISTING_URL)

        assert "address" in exc_info.value.manual_entry_fields
        assert "bedrooms" in exc_info.value.manual_entry_fields

    @pytest.mark.asyncio
    async def test_unsupported_url_rejected(self, pipeline: AcquisitionPipeline, orchestrator: MagicMock) -> None:
        with pytest.raises(RecordValidationError):
            await pipeline.acquire_property("https://www.domain.com.au/1-main-st")

        orchestrator.run_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_record_surfaces_validation_error(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock, listing_html_factory: Callable[..., str]
    ) -> None:
        html = listing_html_factory(address=None)
        route_flows(orchestrator, {PropertyPageFlow: lambda f: RenderedPage(url=f.url, html=html, sufficient=True)})

        with pytest.raises(RecordValidationError) as exc_info:
            await pipeline.acquire_property(LISTING_URL)

        assert exc_info.value.errors == ["Address is required"]


@pytest.mark.integration
class TestEnrichment:
    """Test suite for school and assessment enrichment rules."""

    RECORD = PropertyRecord(address="12 Example Street, Balwyn VIC 3103", rooms=RoomCounts(bedrooms=3))

    @pytest.mark.asyncio
    async def test_schools_and_assessments_attached(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        route_flows(
            orchestrator,
            {
                SchoolCatchmentFlow: lambda f: schools_payload(),
                NaplanLookupFlow: lambda f: BENCHMARK_NAPLAN,
            },
        )

        enriched = await pipeline.enrich_property(self.RECORD)

        assert enriched.schools.skipped is False
        assert enriched.schools.primary.name == "Balwyn Primary School"
        assert [a.school_name for a in enriched.schools.assessments] == [
            "Balwyn Primary School",
            "Balwyn High School",
        ]
        assert [a.category for a in enriched.schools.assessments] == [
            SchoolCategory.PRIMARY,
            SchoolCategory.SECONDARY,
        ]
        assert all(a.quality == 100.0 for a in enriched.schools.assessments)

    @pytest.mark.asyncio
    async def test_school_failure_blocks_record(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        route_flows(orchestrator, {SchoolCatchmentFlow: lambda f: exhausted("school_catchment")})

        with pytest.raises(RetryExhaustedError):
            await pipeline.enrich_property(self.RECORD)

    @pytest.mark.asyncio
    async def test_skipped_schools_complete_record(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        enriched = await pipeline.enrich_property(self.RECORD, skip_schools=True)

        assert enriched.schools.skipped is True
        assert enriched.schools.primary is None
        orchestrator.run_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assessment_failure_silently_omitted(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        def naplan(flow: NaplanLookupFlow) -> Any:
            if flow.school_name == "Balwyn High School":
                return exhausted("naplan_lookup")
            return BENCHMARK_NAPLAN

        route_flows(orchestrator, {SchoolCatchmentFlow: lambda f: schools_payload(), NaplanLookupFlow: naplan})

        enriched = await pipeline.enrich_property(self.RECORD)

        assert [a.school_name for a in enriched.schools.assessments] == ["Balwyn Primary School"]
        assert enriched.schools.secondary.name == "Balwyn High School"

    @pytest.mark.asyncio
    async def test_school_lookups_are_cached(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        route_flows(
            orchestrator,
            {SchoolCatchmentFlow: lambda f: schools_payload(), NaplanLookupFlow: lambda f: BENCHMARK_NAPLAN},
        )

        await pipeline.enrich_property(self.RECORD)
        await pipeline.enrich_property(self.RECORD)

        flows_run = [type(c.args[0]) for c in orchestrator.run_with_retry.call_args_list]
        assert flows_run.count(SchoolCatchmentFlow) == 1
        assert flows_run.count(NaplanLookupFlow) == 2

    @pytest.mark.asyncio
    async def test_enrich_many_keeps_order_and_failures(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        def schools(flow: SchoolCatchmentFlow) -> Any:
            if flow.address.startswith("bad"):
                return exhausted("school_catchment")
            return schools_payload()

        route_flows(orchestrator, {SchoolCatchmentFlow: schools, NaplanLookupFlow: lambda f: BENCHMARK_NAPLAN})
        records = [
            PropertyRecord(address="1 Good St", rooms=RoomCounts(bedrooms=1)),
            PropertyRecord(address="bad address", rooms=RoomCounts(bedrooms=1)),
        ]

        results = await pipeline.enrich_many(records)

        assert results[0].property.address == "1 Good St"
        assert isinstance(results[1], RetryExhaustedError)

    @pytest.mark.asyncio
    async def test_manual_schools_bypass_locator(
        self, pipeline: AcquisitionPipeline, orchestrator: MagicMock
    ) -> None:
        route_flows(orchestrator, {NaplanLookupFlow: lambda f: BENCHMARK_NAPLAN})

        enriched = await pipeline.enrich_property(
            self.RECORD,
            manual_schools={"primary": {"name": "Balwyn  Primary School", "phone": "03 9836 1234"}},
        )

        assert enriched.schools.primary.manual_entry is True
        assert enriched.schools.primary.name == "Balwyn Primary School"
        assert enriched.schools.secondary is None
        flows_run = [type(c.args[0]) for c in orchestrator.run_with_retry.call_args_list]
        assert flows_run == [NaplanLookupFlow]
        assert enriched.schools.assessments[0].category == SchoolCategory.PRIMARY
