"""
Runtime settings for the journey engine (``journey_config.settings``).

``EngineSettings`` is a frozen value object; build it through
``journey_config.get_engine_settings()`` rather than reading the
environment directly.
"""

from __future__ import annotations

from dataclasses import dataclass

from journey_kernel.domain.journey import DEFAULT_JOURNEY_CODE

BOARD_PRIORITIES = frozenset({"LOW", "MEDIUM", "HIGH", "URGENT"})


@dataclass(frozen=True)
class EngineSettings:
    """Resolved engine settings.

    ``board_timeout_seconds`` of None means board calls are not bounded.
    """

    database_url: str | None = None
    default_journey_code: str = DEFAULT_JOURNEY_CODE
    board_priority: str = "MEDIUM"
    board_timeout_seconds: float | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.default_journey_code:
            raise ValueError("default_journey_code must not be empty")
        if self.board_priority not in BOARD_PRIORITIES:
            raise ValueError(
                f"board_priority must be one of {sorted(BOARD_PRIORITIES)}, "
                f"got {self.board_priority!r}"
            )
        if self.board_timeout_seconds is not None and self.board_timeout_seconds <= 0:
            raise ValueError(
                f"board_timeout_seconds must be positive, got {self.board_timeout_seconds}"
            )
