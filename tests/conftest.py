"""Pytest configuration and shared fixtures for the HouseHunt test suite.

This module provides hermetic test infrastructure with the following guarantees:
- No external network requests (Playwright and aiohttp are mocked)
- No real sleeps in retry or typing paths
- Isolated state (config singleton cleared around each test)

Factory fixtures generate listing, school and results pages so tests can
inject missing or malformed fragments without duplicating markup.
"""

from pathlib import Path
from typing import Any, Callable, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[GlobalConfig]:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.
    Uses tmp_path for all file operations to avoid polluting the filesystem.
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    diagnostics_dir = tmp_path / "diagnostics"
    log_dir.mkdir()

    test_env = {
        "APP_NAME": "HouseHunt-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "FETCH_TIMEOUT_SEC": "5",
        "MAX_REDIRECTS": "3",
        "PAGE_READY_TIMEOUT_MS": "5000",
        "STEP_TIMEOUT_MS": "2000",
        "CHALLENGE_TIMEOUT_MS": "1000",
        "FLOW_TIMEOUT_SEC": "30",
        "RETRY_MAX_ATTEMPTS": "3",
        "RETRY_BASE_DELAY_SEC": "0",
        "PROPERTY_RESAMPLE_DELAY_SEC": "0",
        "DIAGNOSTICS_DIR": str(diagnostics_dir),
        "CACHE_MAX_ENTRIES": "8",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


@pytest.fixture
def listing_html_factory() -> Callable[..., str]:
    """Factory for realestate.com.au-like listing documents.

    Pass ``None`` for a field to drop its element from the page.

    Example:
        def test_missing_address(listing_html_factory):
            html = listing_html_factory(address=None)
    """

    def _generate_html(
        address: str | None = "12 Example Street, Balwyn VIC 3103",
        features: str | None = "House with 3 bedrooms 2 bathrooms 2 car spaces 650m² land size",
        price: str | None = "Indicative price: $1,250,000 - $1,350,000",
        auction: str | None = "Auction Saturday 14 March at 11:00am",
        canonical: str | None = "https://www.realestate.com.au/property-house-vic-balwyn-1",
        extra: str = "",
    ) -> str:
        address_html = (
            f'<h1 class="property-info-address">{address}</h1>' if address is not None else ""
        )
        features_html = (
            f'<ul class="property-info__primary-features" aria-label="{features}"></ul>'
            if features is not None
            else ""
        )
        price_html = f"<p>{price}</p>" if price is not None else ""
        auction_html = f'<span class="auction-details">{auction}</span>' if auction is not None else ""
        canonical_html = f'<link rel="canonical" href="{canonical}"/>' if canonical is not None else ""
        return f"""
        <!DOCTYPE html>
        <html>
        <head><title>Listing</title>{canonical_html}</head>
        <body>
            <main>
                {address_html}
                {features_html}
                {price_html}
                {auction_html}
                {extra}
            </main>
        </body>
        </html>
        """

    return _generate_html


@pytest.fixture
def school_html_factory() -> Callable[..., str]:
    """Factory for the catchment locator result panel."""

    def _generate_html(
        name: str | None = "Balwyn Primary School",
        address_lines: tuple[str, ...] = ("Gordon Street", "Balwyn VIC 3103"),
        phone: str | None = "03 9836 1234",
        years: str | None = "Prep-6",
        website: str | None = "https://www.balwynps.vic.edu.au",
        distance: str | None = "0.8 km",
    ) -> str:
        header = f'<h2 id="SchoolInfo-header">{name}</h2>' if name is not None else ""
        address_cell = "".join(f"<span>{line}</span>" for line in address_lines)
        rows = [f"<tr><th>Address</th><td>{address_cell}</td></tr>"]
        if phone is not None:
            rows.append(f"<tr><th>Phone</th><td>{phone}</td></tr>")
        if years is not None:
            rows.append(f"<tr><th>Campus years</th><td>{years}</td></tr>")
        if website is not None:
            rows.append(f'<tr><th>Website</th><td><a href="{website}">Visit</a></td></tr>')
        nearest = (
            f'<div id="NearestSchools"><div class="container"><span class="distance">{distance}</span></div></div>'
            if distance is not None
            else ""
        )
        return f"""
        <html><body>
            <div id="SchoolInfo">
                {header}
                <table>{"".join(rows)}</table>
            </div>
            {nearest}
        </body></html>
        """

    return _generate_html


@pytest.fixture
def naplan_html_factory() -> Callable[..., str]:
    """Factory for a myschool.edu.au results page.

    ``rows`` maps a row label to five scores in metric order.
    """

    def _generate_html(
        rows: dict[str, tuple[Any, ...]] | None = None,
        report_year: str = "2024",
        leading_tables: str = "",
    ) -> str:
        if rows is None:
            rows = {
                "Year 3": (446, 460, 459, 475, 466),
                "Year 5": (539, 539, 536, 561, 566),
            }
        body_rows = "".join(
            "<tr><td>{}</td>{}</tr>".format(label, "".join(f"<td>{v}</td>" for v in values))
            for label, values in rows.items()
        )
        return f"""
        <html><body>
            <h1>NAPLAN results {report_year}</h1>
            {leading_tables}
            <table>
                <tr><th>Year level</th><th>Reading</th><th>Writing</th><th>Spelling</th>
                    <th>Grammar &amp; Punctuation</th><th>Numeracy</th></tr>
                {body_rows}
            </table>
        </body></html>
        """

    return _generate_html


@pytest.fixture
def mock_session(mocker: MockerFixture, mock_config: GlobalConfig) -> MagicMock:
    """Provide a mocked BrowserSession exposing the engine's primitives."""
    session = mocker.MagicMock()
    session.config = mock_config
    session.current_url = "https://example.test/"
    for name in (
        "navigate",
        "wait_for_selector",
        "wait_for_condition",
        "click",
        "select_option",
        "type_humanlike",
        "type_into",
        "press",
        "pause",
        "extract",
        "content",
        "capture_snapshot",
        "query_first",
        "query_all",
    ):
        setattr(session, name, AsyncMock())
    session.navigate = AsyncMock(return_value=200)
    session.await_challenge_resolution = AsyncMock(return_value=False)
    session.wait_for_readiness = AsyncMock(return_value=True)
    return session


def create_playwright_mock() -> tuple[MagicMock, MagicMock, MagicMock, MagicMock, MagicMock]:
    """Create a Playwright mock chain for the async_playwright().start() pattern.

    Returns:
        Tuple of (async_playwright_instance, playwright, browser, context, page).
    """
    page = MagicMock()
    page.url = "https://example.test/"
    page.main_frame = MagicMock()
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.close = AsyncMock()
    page.screenshot = AsyncMock()
    page.wait_for_event = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.query_selector = AsyncMock(return_value=None)
    page.evaluate = AsyncMock()
    page.content = AsyncMock(return_value="<html></html>")
    page.keyboard.press = AsyncMock()

    context = MagicMock()
    context.add_init_script = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    async_playwright_instance = MagicMock()
    async_playwright_instance.start = AsyncMock(return_value=playwright)

    return async_playwright_instance, playwright, browser, context, page


@pytest.fixture
def playwright_mocks(mocker: MockerFixture) -> tuple[MagicMock, MagicMock, MagicMock, MagicMock, MagicMock]:
    """Patch async_playwright in the browser module and return the mock chain."""
    mocks = create_playwright_mock()
    mocker.patch("househunt.browser.async_playwright", return_value=mocks[0])
    mocker.patch("househunt.browser.asyncio.sleep", new=AsyncMock())
    return mocks


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
