"""Sample sources feeding the session aggregator.

Recorded sessions are plain CSV with one ``x,y,z,epoch_ms`` row per sample
(axes in g). A header row is optional. The simulator reproduces the
phase-shifted sine pattern used for bench testing without a sensor.
"""

from __future__ import annotations

import csv
import math
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List, Optional, TextIO

from kbforce.config import AccelerationSample
from kbforce.signals.force import _require_numpy

CSV_COLUMNS = ("x", "y", "z", "epoch_ms")
SIMULATED_RATE_HZ = 100.0


class SampleFormatError(ValueError):
    """Raised when a sample file row cannot be parsed."""


def _is_header(row: List[str]) -> bool:
    return [cell.strip().lower() for cell in row] == list(CSV_COLUMNS)


def _parse_row(row: List[str], line_no: int) -> AccelerationSample:
    if len(row) != len(CSV_COLUMNS):
        raise SampleFormatError(
            f"line {line_no}: expected {len(CSV_COLUMNS)} columns, got {len(row)}"
        )
    try:
        x, y, z = (float(cell) for cell in row[:3])
        epoch_ms = int(float(row[3]))
    except (ValueError, OverflowError) as exc:
        raise SampleFormatError(f"line {line_no}: {exc}") from exc
    return AccelerationSample(x=x, y=y, z=z, epoch_ms=epoch_ms)


def iter_samples_csv(fh: TextIO) -> Iterator[AccelerationSample]:
    """Yield samples from an open CSV stream, skipping blank lines."""
    reader = csv.reader(fh)
    for line_no, row in enumerate(reader, start=1):
        if not row or all(not cell.strip() for cell in row):
            continue
        if line_no == 1 and _is_header(row):
            continue
        yield _parse_row(row, line_no)


def load_samples_csv(path: str | Path) -> List[AccelerationSample]:
    """Read every sample from a CSV file."""
    with Path(path).open("r", encoding="utf-8", newline="") as fh:
        return list(iter_samples_csv(fh))


def write_samples_csv(path: str | Path, samples: Iterable[AccelerationSample]) -> Path:
    """Write samples to CSV with a header row."""
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with dest.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(CSV_COLUMNS)
        for sample in samples:
            writer.writerow([sample.x, sample.y, sample.z, sample.epoch_ms])
    return dest


def simulate_samples(
    start_epoch_ms: int,
    duration_sec: float,
    *,
    rate_hz: float = SIMULATED_RATE_HZ,
) -> Iterator[AccelerationSample]:
    """Generate a synthetic 1 Hz swing-like signal.

    Each axis is a sine offset in phase from the others, so the magnitude
    swings well above and below 1 g once per second.
    """

    if rate_hz <= 0:
        raise ValueError("rate_hz must be positive")
    step_ms = int(round(1000.0 / rate_hz))
    total = int(duration_sec * rate_hz)
    for i in range(total):
        offset_ms = i * step_ms
        t = offset_ms / 1000.0
        phase = t * 2.0 * math.pi
        yield AccelerationSample(
            x=1.0 + 2.0 * math.sin(phase),
            y=0.5 + 1.5 * math.sin(phase + math.pi / 2),
            z=0.8 + 1.2 * math.sin(phase + math.pi),
            epoch_ms=start_epoch_ms + offset_ms,
        )


def replay(
    samples: Iterable[AccelerationSample],
    aggregator: Any,
    *,
    max_samples: Optional[int] = None,
    on_ingest: Optional[Callable[[], None]] = None,
) -> int:
    """Feed samples into anything with an ``ingest`` method, in order.

    ``on_ingest`` is called after every accepted sample.

    Returns:
        Number of samples ingested.
    """

    count = 0
    for sample in samples:
        if max_samples is not None and count >= max_samples:
            break
        aggregator.ingest(sample)
        count += 1
        if on_ingest is not None:
            on_ingest()
    return count


def samples_to_array(samples: Iterable[AccelerationSample]) -> Any:
    """Stack sample axes into an ``(N, 3)`` numpy array for batch analysis."""
    np = _require_numpy()
    rows = [(s.x, s.y, s.z) for s in samples]
    return np.asarray(rows, dtype=float).reshape(-1, 3)
