"""Per-sample input checks kept outside the arithmetic core.

The aggregator trusts its input. Sources that may deliver NaNs or
out-of-order timestamps (a flaky BLE link, a hand-edited CSV) should feed
through :class:`ValidatingAggregator` instead.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Optional, Union

from kbforce.config import AccelerationSample, ExerciseType
from kbforce.repdetect.threshold import RepSummary
from kbforce.session.aggregator import SessionAggregator, SessionSnapshot, SessionSummary

logger = logging.getLogger(__name__)


class SampleRejected(ValueError):
    """Raised when a sample fails validation and was not ingested."""


def validate_sample(
    sample: AccelerationSample, last_epoch_ms: Optional[int] = None, epoch_ms: Optional[int] = None
) -> int:
    """Check a sample and return the timestamp it will be ingested with.

    Raises:
        SampleRejected: on non-finite axes or a timestamp earlier than
            ``last_epoch_ms``.
    """

    for axis in ("x", "y", "z"):
        value = getattr(sample, axis)
        if not math.isfinite(value):
            raise SampleRejected(f"non-finite {axis} value: {value!r}")

    stamp = sample.epoch_ms if epoch_ms is None else epoch_ms
    if stamp < 0:
        raise SampleRejected(f"negative timestamp: {stamp}")
    if last_epoch_ms is not None and stamp < last_epoch_ms:
        raise SampleRejected(f"timestamp {stamp} is earlier than previous sample {last_epoch_ms}")
    return stamp


class ValidatingAggregator:
    """Wraps a :class:`SessionAggregator`, rejecting bad samples before ingest.

    The ordering check and the ingest that follows it run under one lock, so
    concurrent callers cannot both pass the check against the same previous
    timestamp.
    """

    def __init__(self, inner: SessionAggregator) -> None:
        self._inner = inner
        self._lock = threading.Lock()
        self.rejected = 0

    @property
    def inner(self) -> SessionAggregator:
        return self._inner

    def ingest(
        self, sample: AccelerationSample, epoch_ms: Optional[int] = None
    ) -> Optional[RepSummary]:
        with self._lock:
            try:
                stamp = validate_sample(sample, self._inner.last_epoch_ms, epoch_ms)
            except SampleRejected:
                self.rejected += 1
                logger.warning("rejected sample %r", sample)
                raise
            return self._inner.ingest(sample, stamp)

    def snapshot(self) -> SessionSnapshot:
        return self._inner.snapshot()

    def finalize(self, exercise_type: Union[ExerciseType, str]) -> SessionSummary:
        return self._inner.finalize(exercise_type)

    def reset(self) -> None:
        with self._lock:
            self.rejected = 0
            self._inner.reset()
