"""HouseHunt Entry Point.

Bootstrap layer only; all functional code resides in /househunt.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Run the acquisition pipeline for one listing URL
    4. Handle top-level exceptions with graceful shutdown

Usage:
    python main.py https://www.realestate.com.au/property-house-vic-balwyn-123
    python main.py <url> --skip-schools
"""

import argparse
import asyncio
import json
import sys
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, get_config
from househunt.exceptions import (
    HouseHuntError,
    LoggingInitializationError,
    PropertyAcquisitionError,
)
from househunt.logger import configure_logging


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Acquire and enrich a property listing")
    parser.add_argument("url", help="realestate.com.au listing URL")
    parser.add_argument(
        "--skip-schools", action="store_true", help="Do not look up catchment schools"
    )
    return parser.parse_args(argv)


async def _run_pipeline(config: GlobalConfig, url: str, skip_schools: bool) -> int:
    """Acquire one listing and print the enriched record as JSON.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    from househunt.pipeline import AcquisitionPipeline

    logger.info(
        "Pipeline execution started",
        app_name=config.app_name,
        environment=config.environment,
        url=url,
        skip_schools=skip_schools,
    )

    pipeline = AcquisitionPipeline(config)
    enriched = await pipeline.acquire(url, skip_schools=skip_schools)

    print(json.dumps(enriched.model_dump(mode="json"), indent=2, ensure_ascii=False))
    logger.info(
        "Pipeline execution completed successfully",
        assessments=len(enriched.schools.assessments),
        cache=pipeline.cache.stats(),
    )
    return 0


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Log a fatal error and exit with a non-zero code."""
    if isinstance(exc, PropertyAcquisitionError):
        logger.critical(
            "Listing could not be acquired - enter it manually",
            url=exc.url,
            manual_entry_fields=exc.manual_entry_fields,
        )
        sys.exit(2)

    if isinstance(exc, HouseHuntError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main(argv: list[str] | None = None) -> int:
    """Application entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = _parse_args(argv)

    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet - print to stderr
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(_run_pipeline(config, args.url, args.skip_schools))
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user (Ctrl+C)")
        return 130
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
