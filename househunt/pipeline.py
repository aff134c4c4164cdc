"""Acquisition pipeline: listing, catchment schools and NAPLAN quality.

The pipeline is the caller-facing seam. It picks the flow for a request,
runs it through the RetryOrchestrator, post-processes the result with the
extraction and quality modules and returns records ready for the
persistence collaborator.

Failure semantics:
    - A listing that no route could fetch raises PropertyAcquisitionError,
      which names the fields a user could enter by hand.
    - A failed school lookup blocks the enriched record unless schools
      are explicitly skipped.
    - A failed assessment lookup is logged and left out.
"""

import asyncio
import re
from typing import Any

from config.settings import GlobalConfig, get_config
from househunt.cache import LookupCache, cache_key
from househunt.exceptions import (
    HouseHuntError,
    PropertyAcquisitionError,
    RecordValidationError,
)
from househunt.extraction import ensure_valid_property, parse_property_html
from househunt.fetcher import ContentFetcher
from househunt.flows import NaplanLookupFlow, PropertyPageFlow, SchoolCatchmentFlow
from househunt.logger import get_logger
from househunt.models import (
    AssessmentScoreSet,
    EnrichedProperty,
    PropertyRecord,
    SchoolAssessment,
    SchoolCategory,
    SchoolEnrichment,
    SchoolRecord,
)
from househunt.quality import calculate_quality, infer_school_category
from househunt.retry import RetryOrchestrator

log = get_logger(__name__)


class AcquisitionPipeline:
    """Acquires and enriches property records.

    Attributes:
        config: GlobalConfig instance.
        orchestrator: Runs every flow with retries and diagnostics.
        fetcher: Plain HTTP route used when the browser flow fails.
        cache: Shared lookup cache for school and assessment results.

    Example:
        pipeline = AcquisitionPipeline()
        enriched = await pipeline.acquire(
            "https://www.realestate.com.au/property-house-vic-balwyn-123"
        )
        print(enriched.model_dump_json(indent=2))
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        orchestrator: RetryOrchestrator | None = None,
        fetcher: ContentFetcher | None = None,
        cache: LookupCache | None = None,
    ) -> None:
        self.config = config or get_config()
        self.orchestrator = orchestrator or RetryOrchestrator(self.config)
        self.fetcher = fetcher or ContentFetcher(self.config)
        self.cache = cache or LookupCache(self.config.cache_max_entries, self.config.cache_ttl_sec)
        self._url_pattern = re.compile(self.config.property_url_pattern)

    def is_supported_url(self, url: str) -> bool:
        return bool(self._url_pattern.match(url))

    async def acquire_property(self, url: str) -> PropertyRecord:
        """Fetch and parse a listing.

        The browser flow runs first; if it fails, a plain fetch is tried.

        Raises:
            RecordValidationError: If the URL is unsupported or the parsed
                record lacks required fields.
            PropertyAcquisitionError: If neither route returned a document.
        """
        if not self.is_supported_url(url):
            raise RecordValidationError(["URL is not a realestate.com.au listing"], source=url)

        html, source_url = await self._render_listing(url)
        record = parse_property_html(html, source_url=source_url)
        ensure_valid_property(record)
        log.info(
            "Property acquired",
            address=record.address,
            bedrooms=record.rooms.bedrooms,
            price_min=record.price.min,
            price_max=record.price.max,
        )
        return record

    async def _render_listing(self, url: str) -> tuple[str, str]:
        try:
            result = await self.orchestrator.run_with_retry(PropertyPageFlow(url, self.config))
            page = result.payload
            return page.html, page.url
        except HouseHuntError as exc:
            log.warning("Browser route failed, trying plain fetch", url=url, error=str(exc))
            browser_error = exc

        try:
            fetched = await self.orchestrator.run_callable_with_retry(
                "property_fetch", lambda: self.fetcher.fetch(url)
            )
        except HouseHuntError as exc:
            log.error("All acquisition routes failed", url=url, error=str(exc))
            raise PropertyAcquisitionError(
                url=url, reason=f"browser: {browser_error.message}; fetch: {exc.message}"
            ) from exc
        return fetched.body, fetched.final_url

    async def lookup_schools(self, address: str) -> dict[str, SchoolRecord]:
        """Catchment schools for ``address`` keyed by school type.

        Raises:
            RetryExhaustedError: If the locator flow failed on every attempt.
        """

        async def load() -> dict[str, SchoolRecord]:
            result = await self.orchestrator.run_with_retry(SchoolCatchmentFlow(address, self.config))
            return result.payload

        return await self.cache.get_or_load(cache_key("schools", address), load)

    async def lookup_assessment(
        self, school_name: str, category: SchoolCategory | None = None
    ) -> SchoolAssessment | None:
        """NAPLAN results and quality for a school; None when unavailable."""
        category = category or infer_school_category(school_name)

        async def load() -> AssessmentScoreSet:
            result = await self.orchestrator.run_with_retry(NaplanLookupFlow(school_name, self.config))
            return result.payload

        try:
            scores = await self.cache.get_or_load(cache_key("naplan", school_name), load)
        except HouseHuntError as exc:
            log.warning("Assessment lookup failed, omitting", school=school_name, error=str(exc))
            return None

        if not scores.has_scores:
            log.info("No assessment results published", school=school_name)
            return None

        quality = calculate_quality(scores, category)
        log.info("School quality scored", school=school_name, category=str(category), quality=quality)
        return SchoolAssessment(
            school_name=school_name, category=category, scores=scores, quality=quality
        )

    async def enrich_property(
        self,
        record: PropertyRecord,
        skip_schools: bool = False,
        manual_schools: dict[str, dict[str, Any]] | None = None,
    ) -> EnrichedProperty:
        """Attach catchment schools and their assessments to ``record``.

        ``manual_schools`` maps a category ("primary"/"secondary") to details
        the user entered after a failed lookup; when given, the locator is
        not run but assessments are still looked up for those schools.

        Raises:
            HouseHuntError: If the school lookup fails and was not skipped.
        """
        if skip_schools:
            log.info("School enrichment skipped", address=record.address)
            return EnrichedProperty(property=record, schools=SchoolEnrichment(skipped=True))

        if manual_schools is not None:
            log.info("Using manually entered schools", address=record.address, categories=list(manual_schools))
            schools = {
                category: SchoolRecord.manual(details, SchoolCategory(category))
                for category, details in manual_schools.items()
            }
        else:
            schools = await self.lookup_schools(record.address)
        enrichment = SchoolEnrichment(
            primary=schools.get(str(SchoolCategory.PRIMARY)),
            secondary=schools.get(str(SchoolCategory.SECONDARY)),
        )

        for school in (enrichment.primary, enrichment.secondary):
            if school is None or not school.success or not school.name:
                continue
            assessment = await self.lookup_assessment(school.name, school.school_type)
            if assessment is not None:
                enrichment.assessments.append(assessment)

        return EnrichedProperty(property=record, schools=enrichment)

    async def enrich_many(
        self, records: list[PropertyRecord], skip_schools: bool = False
    ) -> list[EnrichedProperty | BaseException]:
        """Enrich several records concurrently, one session per unit.

        Results line up with ``records``; a failed unit yields its exception.
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrent_sessions)

        async def bounded(record: PropertyRecord) -> EnrichedProperty:
            async with semaphore:
                return await self.enrich_property(record, skip_schools)

        return await asyncio.gather(*(bounded(record) for record in records), return_exceptions=True)

    async def acquire(self, url: str, skip_schools: bool = False) -> EnrichedProperty:
        """Acquire a listing and enrich it."""
        record = await self.acquire_property(url)
        return await self.enrich_property(record, skip_schools)
