"""Coordination configuration loader."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import (
    DEFAULT_AUTO_CONFIRM_MINUTES,
    DEFAULT_COMMIT_BACKOFF_SECONDS,
    DEFAULT_MAX_CHAIN_HOPS,
    DEFAULT_MAX_COMMIT_ATTEMPTS,
    MAX_PRIORITY,
    MIN_PRIORITY,
    PREFERRED_PRIORITY_THRESHOLD,
    TRAVEL_SPEEDS_KMH,
)
from .exceptions import InvalidPriorityError, InvalidRangeError
from .models import AssignmentMode, TravelMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "coordination.json"


@dataclass
class CoordinationConfig:
    """Tunable engine settings. Every key has a default."""

    max_chain_hops: int = DEFAULT_MAX_CHAIN_HOPS
    max_commit_attempts: int = DEFAULT_MAX_COMMIT_ATTEMPTS
    commit_backoff_seconds: float = DEFAULT_COMMIT_BACKOFF_SECONDS
    preferred_priority_threshold: int = PREFERRED_PRIORITY_THRESHOLD
    auto_confirm_minutes: int = DEFAULT_AUTO_CONFIRM_MINUTES
    assignment_mode: AssignmentMode = AssignmentMode.PRIORITY_FIRST
    travel_speeds_kmh: dict[str, float] = field(
        default_factory=lambda: dict(TRAVEL_SPEEDS_KMH)
    )

    def __post_init__(self) -> None:
        self.assignment_mode = AssignmentMode(self.assignment_mode)
        if self.max_chain_hops < 1:
            raise InvalidRangeError("max_chain_hops must be at least 1")
        if self.max_commit_attempts < 1:
            raise InvalidRangeError("max_commit_attempts must be at least 1")
        if self.auto_confirm_minutes <= 0:
            raise InvalidRangeError("auto_confirm_minutes must be positive")
        if self.preferred_priority_threshold not in range(MIN_PRIORITY, MAX_PRIORITY + 1):
            raise InvalidPriorityError(self.preferred_priority_threshold)
        for mode in TravelMode:
            if mode != TravelMode.NONE and self.travel_speeds_kmh.get(mode.value, 0) <= 0:
                raise InvalidRangeError(f"Travel speed for '{mode.value}' must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CoordinationConfig":
        known = set(cls.__dataclass_fields__)
        for key in data:
            if key not in known:
                logger.warning(f"Ignoring unknown configuration key '{key}'")

        speeds = dict(TRAVEL_SPEEDS_KMH)
        speeds.update(data.get("travel_speeds_kmh", {}))
        values = {k: v for k, v in data.items() if k in known and k != "travel_speeds_kmh"}
        return cls(travel_speeds_kmh=speeds, **values)


class ConfigLoader:
    """Loader for the coordination configuration file."""

    def __init__(self, config_dir: Path | None = None):
        """
        Initialize configuration loader.

        Args:
            config_dir: Directory containing coordination.json.
                        Defaults to 'reference/'. A missing file means defaults.
        """
        if config_dir is None:
            config_dir = Path("reference")

        self.config_dir = Path(config_dir)
        path = self.config_dir / CONFIG_FILENAME
        self.config = self._load(path) if path.exists() else CoordinationConfig()

    def _load(self, path: Path) -> CoordinationConfig:
        """Load configuration from JSON."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        logger.debug(f"Loaded configuration from {path}")
        return CoordinationConfig.from_dict(data)
