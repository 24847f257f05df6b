"""Shared configuration and data models used across the force pipeline."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

GRAVITY_MS2 = 9.81
DEFAULT_THRESHOLD_NORM = 0.4
DEFAULT_EXIT_RATIO = 0.4
DEFAULT_BODY_MASS_KG = 70.0
DEFAULT_KETTLEBELL_MASS_KG = 24.0

DATA_DIR_ENV = "KBFORCE_DATA_DIR"


class ExerciseType(str, Enum):
    SNATCH = "snatch"
    SWING = "swing"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class AccelerationSample:
    """One accelerometer reading.

    Attributes:
        x: X-axis acceleration in g.
        y: Y-axis acceleration in g.
        z: Z-axis acceleration in g.
        epoch_ms: Acquisition time in milliseconds since the Unix epoch.
    """

    x: float
    y: float
    z: float
    epoch_ms: int


def _check_positive_mass(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive finite number, got {value!r}")


def check_thresholds(threshold_norm: float, exit_ratio: float) -> None:
    """Reject threshold pairs whose exit level is not strictly below entry."""
    if not math.isfinite(threshold_norm) or threshold_norm <= 0:
        raise ValueError(f"threshold_norm must be positive, got {threshold_norm!r}")
    if not 0 < exit_ratio < 1:
        raise ValueError(f"exit_ratio must be in (0, 1), got {exit_ratio!r}")


@dataclass(frozen=True)
class SessionConfig:
    """Per-session parameters, fixed once a session starts.

    The exit threshold is ``threshold_norm * exit_ratio``; keeping the ratio
    below one gives the detector its hysteresis band.
    """

    kettlebell_mass_kg: float
    body_mass_kg: float
    threshold_norm: float = DEFAULT_THRESHOLD_NORM
    exit_ratio: float = DEFAULT_EXIT_RATIO

    def __post_init__(self) -> None:
        _check_positive_mass("kettlebell_mass_kg", self.kettlebell_mass_kg)
        _check_positive_mass("body_mass_kg", self.body_mass_kg)
        check_thresholds(self.threshold_norm, self.exit_ratio)

    @property
    def exit_threshold_norm(self) -> float:
        return self.threshold_norm * self.exit_ratio

    @property
    def body_weight_n(self) -> float:
        """Body weight expressed as a force in newtons."""
        return self.body_mass_kg * GRAVITY_MS2


@dataclass(frozen=True)
class UserProfile:
    """Persisted user settings; body mass pre-fills new sessions."""

    body_mass_kg: float = DEFAULT_BODY_MASS_KG

    def __post_init__(self) -> None:
        _check_positive_mass("body_mass_kg", self.body_mass_kg)


def data_dir() -> Path:
    """Return the storage root, honouring ``$KBFORCE_DATA_DIR`` when set."""
    override = os.getenv(DATA_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".kbforce"
