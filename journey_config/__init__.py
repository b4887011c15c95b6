"""
journey_config -- single public entrypoint for journey engine configuration.

Responsibility:
    Provides the ONLY way to obtain runtime settings through
    ``get_engine_settings()``.  No other component reads the environment
    directly.  YAML journey definitions are loaded by
    ``journey_config.loader`` and published through the definition
    service; the loader never writes to the database itself.

Architecture position:
    Configuration -- sits above ``journey_kernel`` and below
    ``journey_services``.  The kernel MUST NEVER import from
    ``journey_config``.

Environment variables:
    JOURNEY_DATABASE_URL           SQLAlchemy URL (unset: caller decides)
    JOURNEY_DEFAULT_CODE           journey used when commands omit one
    JOURNEY_BOARD_PRIORITY         card priority (LOW/MEDIUM/HIGH/URGENT)
    JOURNEY_BOARD_TIMEOUT_SECONDS  bound on a single board call
    JOURNEY_LOG_LEVEL              level for the journey_kernel loggers

Failure modes:
    - ``ValueError`` -- a variable is set to a value that does not parse
      or fails EngineSettings validation.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from journey_config.settings import EngineSettings
from journey_kernel.domain.journey import DEFAULT_JOURNEY_CODE

_logger = logging.getLogger("journey_kernel.config")

# Bundled journey definition sets
DEFAULT_SETS_DIR = Path(__file__).parent / "sets"


def get_engine_settings(environ: Mapping[str, str] | None = None) -> EngineSettings:
    """The ONLY public settings entrypoint.

    Args:
        environ: Mapping to read instead of ``os.environ`` (tests).

    Raises:
        ValueError: If a variable cannot be parsed or is out of range.
    """
    env = os.environ if environ is None else environ

    timeout_raw = (env.get("JOURNEY_BOARD_TIMEOUT_SECONDS") or "").strip()
    try:
        timeout = float(timeout_raw) if timeout_raw else None
    except ValueError:
        raise ValueError(
            f"JOURNEY_BOARD_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}"
        ) from None

    settings = EngineSettings(
        database_url=env.get("JOURNEY_DATABASE_URL") or None,
        default_journey_code=env.get("JOURNEY_DEFAULT_CODE") or DEFAULT_JOURNEY_CODE,
        board_priority=(env.get("JOURNEY_BOARD_PRIORITY") or "MEDIUM").upper(),
        board_timeout_seconds=timeout,
        log_level=(env.get("JOURNEY_LOG_LEVEL") or "INFO").upper(),
    )

    _logger.debug(
        "journey_settings_loaded",
        extra={
            "database_configured": settings.database_url is not None,
            "default_journey_code": settings.default_journey_code,
            "board_priority": settings.board_priority,
            "board_timeout_seconds": settings.board_timeout_seconds,
            "log_level": settings.log_level,
        },
    )
    return settings


__all__ = ["DEFAULT_SETS_DIR", "EngineSettings", "get_engine_settings"]
