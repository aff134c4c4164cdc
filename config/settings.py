"""Global configuration management using pydantic-settings.

This module implements the 12-factor app methodology for configuration,
loading values from environment variables with strict type validation.
The Singleton pattern ensures consistent configuration state across the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    All configuration values are loaded from environment variables,
    with sensible defaults for development. Production deployments
    should override these via .env or environment injection.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment (development/test/production).
        debug: Enable verbose debugging output.
        headless: Run Chromium without a visible window.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        fetch_timeout_sec: Overall timeout for a plain network fetch.
        max_redirects: Redirect chain depth before RedirectLoopError.
        dns_nameservers: Public resolvers tried before default resolution.
        page_ready_timeout_ms: Timeout for a page readiness condition.
        step_timeout_ms: Timeout for a single UI wait inside a flow.
        challenge_timeout_ms: How long to wait for a challenge redirect.
        flow_timeout_sec: Deadline for one whole flow attempt.
        retry_max_attempts: Maximum attempts per flow.
        retry_base_delay_sec: Multiplier in the 2^attempt backoff.
        property_min_content_bytes: Byte length accepted as a full listing.
        school_target_year: Enrolment year selected on the catchment site.
        diagnostics_dir: Directory for failure screenshots.
        cache_max_entries: Bound on the school lookup cache.
        cache_ttl_sec: Time-to-live of a cached lookup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="HouseHunt", description="Application identifier")
    environment: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(
        default=False, description="Run browser headless (challenge pages prefer a visible window)"
    )
    locale: str = Field(default="en-AU", description="Browser locale")
    timezone_id: str = Field(default="Australia/Melbourne", description="Browser timezone")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Content Fetcher
    fetch_timeout_sec: float = Field(
        default=30.0, gt=0.0, le=300.0, description="Overall fetch timeout in seconds"
    )
    max_redirects: int = Field(
        default=10, ge=0, le=50, description="Maximum redirect chain depth"
    )
    dns_nameservers: list[str] = Field(
        default=["1.1.1.1", "8.8.8.8"],
        description="Public resolvers tried before the system resolver",
    )

    # Automation timeouts
    page_ready_timeout_ms: int = Field(
        default=30000, ge=1000, le=120000, description="Page readiness timeout"
    )
    step_timeout_ms: int = Field(
        default=10000, ge=500, le=60000, description="Per-step UI wait timeout"
    )
    challenge_timeout_ms: int = Field(
        default=15000, ge=0, le=120000, description="Challenge redirect wait"
    )
    flow_timeout_sec: float = Field(
        default=180.0, ge=10.0, le=900.0, description="Deadline for one flow attempt"
    )

    # Resilience Parameters
    max_concurrent_sessions: int = Field(
        default=2, ge=1, le=8, description="Concurrent browser sessions in batch mode"
    )
    retry_max_attempts: int = Field(
        default=3, ge=1, le=10, description="Maximum retry attempts"
    )
    retry_base_delay_sec: float = Field(
        default=2.0, ge=0.0, le=30.0, description="Base delay for exponential backoff"
    )

    # Property page
    property_url_pattern: str = Field(
        default=r"^https?://(www\.)?realestate\.com\.au/property-",
        description="Accepted listing URL pattern",
    )
    property_min_content_bytes: int = Field(
        default=50000, ge=0, description="Content length accepted as a rendered listing"
    )
    property_resample_delay_sec: float = Field(
        default=5.0, ge=0.0, le=60.0, description="Wait before re-sampling thin content"
    )
    property_content_markers: list[str] = Field(
        default=["property-info-address", "Indicative price", "bedroom"],
        description="Markers that identify a rendered listing",
    )

    # School catchment (findmyschool.vic.gov.au)
    school_finder_url: str = Field(
        default="https://www.findmyschool.vic.gov.au",
        description="School catchment locator",
    )
    school_target_year: str = Field(default="2026", description="Enrolment year")
    school_type_labels: dict[str, str] = Field(
        default={"primary": "Primary", "secondary": "Secondary"},
        description="Option label for each school type on the locator",
    )
    css_selector_school_year: str = Field(
        default="select#year, select[name='year']", description="Year selector"
    )
    css_selector_school_type: str = Field(
        default="select#schoolType, select[name='schoolType']",
        description="School type selector",
    )
    css_selector_school_address: str = Field(
        default="input#address, input[placeholder*='address' i]",
        description="Address input",
    )
    css_selector_school_suggestion: str = Field(
        default="ul[role='listbox'] li, .autocomplete-suggestion",
        description="Address suggestion list item",
    )
    css_selector_school_header: str = Field(
        default="#SchoolInfo-header", description="School name header"
    )
    css_selector_school_address_parts: str = Field(
        default="#SchoolInfo .address span, #SchoolInfo .address-line",
        description="School address segments",
    )
    css_selector_school_distance: str = Field(
        default="#NearestSchools .container .distance", description="School distance"
    )

    # NAPLAN results (myschool.edu.au)
    naplan_url: str = Field(
        default="https://www.myschool.edu.au/", description="Assessment results site"
    )
    css_selector_terms_checkbox: str = Field(
        default="#checkBoxTou", description="Terms of use checkbox"
    )
    css_selector_terms_label: str = Field(
        default="label.tou-checkbox-inline", description="Terms of use label"
    )
    css_selector_terms_accept: str = Field(
        default="button.accept", description="Terms accept button"
    )
    naplan_search_selectors: list[str] = Field(
        default=[
            'input[type="text"]',
            "input.form-control",
            'input[placeholder*="school" i]',
            'input[placeholder*="Search" i]',
        ],
        description="Candidate selectors for the school search input",
    )
    css_selector_search_button: str = Field(
        default="button.myschool-search-button", description="Search button"
    )
    css_selector_school_link: str = Field(
        default='a[href*="/school/"]', description="School profile links"
    )

    # Diagnostics
    diagnostics_dir: Path = Field(
        default=Path("diagnostics"), description="Failure screenshot directory"
    )
    diagnostics_prefix: str = Field(
        default="househunt-error", description="Failure screenshot file prefix"
    )

    # Lookup cache
    cache_max_entries: int = Field(default=256, ge=1, description="Cache size bound")
    cache_ttl_sec: float = Field(default=86400.0, gt=0.0, description="Cache entry TTL")

    # Stealth Configuration - User Agent Rotation Pool
    user_agents: list[str] = Field(
        default=[
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        ],
        description="User-agent rotation pool for stealth",
    )

    @field_validator("log_dir", "diagnostics_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("user_agents", "naplan_search_selectors", "dns_nameservers")
    @classmethod
    def ensure_not_empty(cls, value: list[str]) -> list[str]:
        """Reject empty candidate lists."""
        if not value:
            raise ValueError("List must contain at least one entry")
        return value

    @field_validator("school_finder_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize the locator URL without a trailing slash."""
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
