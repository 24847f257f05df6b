"""Acceleration to force conversion.

Gravity is removed as a scalar: the 1 g contribution is subtracted from the
total magnitude and the result clamped at zero. No attempt is made to correct
for sensor tilt, so the value is the dynamic force magnitude only.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union

from kbforce.config import GRAVITY_MS2, AccelerationSample

Vector3 = tuple[float, float, float]


@dataclass(frozen=True)
class ForceReading:
    """Force derived from a single sample.

    Attributes:
        force_n: Dynamic force on the bell in newtons.
        force_norm: ``force_n`` as a multiple of body weight (0.0 when body
            mass is not positive).
    """

    force_n: float
    force_norm: float


def dynamic_magnitude_g(x: float, y: float, z: float) -> float:
    """Total acceleration magnitude minus 1 g, floored at zero."""
    mag_g = math.sqrt(x * x + y * y + z * z)
    return max(mag_g - 1.0, 0.0)


def compute_force(
    sample: Union[AccelerationSample, Vector3],
    kettlebell_mass_kg: float,
    body_mass_kg: float,
) -> ForceReading:
    """Convert an acceleration sample in g to absolute and normalized force."""
    if isinstance(sample, AccelerationSample):
        x, y, z = sample.x, sample.y, sample.z
    else:
        x, y, z = sample

    accel_ms2 = dynamic_magnitude_g(float(x), float(y), float(z)) * GRAVITY_MS2
    force_n = kettlebell_mass_kg * accel_ms2
    if body_mass_kg > 0:
        force_norm = force_n / (body_mass_kg * GRAVITY_MS2)
    else:
        force_norm = 0.0
    return ForceReading(force_n=force_n, force_norm=force_norm)


def _require_numpy():
    """Import numpy lazily so the streaming path has no hard dependency on it."""
    try:
        import numpy as np  # type: ignore
    except ImportError as exc:  # pragma: no cover - environment dependent
        raise ImportError(
            "numpy is required for batch force computation. "
            "Install the numeric extra (pip install kbforce[numeric]) or call compute_force per sample."
        ) from exc
    return np


def force_series(xyz: Any, kettlebell_mass_kg: float, body_mass_kg: float) -> tuple[Any, Any]:
    """Vectorised :func:`compute_force` over an ``(N, 3)`` array of samples in g.

    Returns:
        Tuple ``(force_n, force_norm)`` of 1-D float arrays of length N.
    """

    np = _require_numpy()
    arr = np.asarray(xyz, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"expected an (N, 3) array, got shape {arr.shape}")

    mag_g = np.sqrt(np.sum(arr * arr, axis=1))
    dyn_g = np.maximum(mag_g - 1.0, 0.0)
    force_n = kettlebell_mass_kg * (dyn_g * GRAVITY_MS2)
    if body_mass_kg > 0:
        force_norm = force_n / (body_mass_kg * GRAVITY_MS2)
    else:
        force_norm = np.zeros_like(force_n)
    return force_n, force_norm
