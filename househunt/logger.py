"""Structured JSON logging configuration using loguru.

Console output is human-readable; the file sink writes one JSON object per
line with the bound context (url, flow, attempt, state) so failed
acquisitions can be traced after the fact. The log directory is validated
at startup and the application refuses to run without it.
"""

import json
import sys
from datetime import UTC
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from househunt.exceptions import LoggingInitializationError

# Lifted out of "context" so acquisitions can be filtered per flow run.
CORRELATION_KEYS = ("flow", "attempt", "state", "url")


def _json_serializer(record: dict[str, Any]) -> str:
    """Format a loguru record as a single-line JSON document.

    Args:
        record: Loguru record dictionary containing log metadata.

    Returns:
        JSON-formatted string representation of the log record.
    """
    subset = {
        "timestamp": record["time"].astimezone(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if record["exception"] is not None:
        subset["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
        }

    extra = {k: v for k, v in record["extra"].items() if k != "serialized"}
    for key in CORRELATION_KEYS:
        if key in extra:
            subset[key] = extra.pop(key)
    if extra:
        subset["context"] = extra

    return json.dumps(subset, default=str) + "\n"


def _validate_log_directory(log_dir: Path) -> None:
    """Ensure the log directory exists and is writable.

    Raises:
        LoggingInitializationError: If directory creation or write test fails.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)

        test_file = log_dir / ".write_test"
        test_file.write_text("write_test")
        test_file.unlink()

    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"Permission denied: {exc}",
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"OS error during directory validation: {exc}",
        ) from exc


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Initialize the logging infrastructure.

    Configures loguru with a colorized console sink and a rotating JSON
    file sink. Call once during bootstrap, before any flow runs.

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Raises:
        LoggingInitializationError: If log directory validation fails.
    """
    if config is None:
        config = get_config()

    logger.remove()

    _validate_log_directory(config.log_dir)

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level> | {extra}"
    )

    logger.add(
        sys.stderr,
        format=console_format,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    log_file_path = config.log_dir / "househunt_{time:YYYY-MM-DD}.json"

    logger.add(
        str(log_file_path),
        format="{extra[serialized]}",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        serialize=False,
        filter=lambda record: record["extra"].update(serialized=_json_serializer(record)) or True,
    )

    logger.info(
        "Logging infrastructure initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Get a logger bound with the module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Flow started", flow="naplan")
    """
    return logger.bind(module=name)


def flow_logger(flow: str, **context: Any) -> "logger":
    """Get a logger bound to one flow run.

    The orchestrator binds ``attempt``; flows add ``state`` as they
    transition, so every line of a failed attempt can be correlated.

    Example:
        >>> attempt_log = flow_logger("naplan_lookup", attempt=2)
        >>> attempt_log.bind(state="searching").info("Typing query")
    """
    return logger.bind(module=f"househunt.flows.{flow}", flow=flow, **context)
