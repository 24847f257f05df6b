"""Display-rate decimation of live session snapshots.

The aggregator processes every sample; a display rarely needs more than a few
tens of updates per second. :class:`ThrottledPublisher` sits downstream, reads
snapshots and forwards at most one per interval. It only ever reads from the
aggregator.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

from kbforce.session.aggregator import SessionSnapshot

DEFAULT_PUBLISH_RATE_HZ = 20.0


class SnapshotSource(Protocol):
    def snapshot(self) -> SessionSnapshot: ...


SnapshotSink = Callable[[SessionSnapshot], None]


class ThrottledPublisher:
    def __init__(
        self,
        source: SnapshotSource,
        sink: SnapshotSink,
        *,
        rate_hz: float = DEFAULT_PUBLISH_RATE_HZ,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        self._source = source
        self._sink = sink
        self._interval = 1.0 / rate_hz
        self._clock = clock
        self._last_publish: Optional[float] = None

    @property
    def interval_sec(self) -> float:
        return self._interval

    def poll(self) -> bool:
        """Publish if the interval has elapsed. Returns whether it published."""
        now = self._clock()
        if self._last_publish is not None and now - self._last_publish < self._interval:
            return False
        self._publish(now)
        return True

    def flush(self) -> None:
        """Publish the latest snapshot immediately."""
        self._publish(self._clock())

    def _publish(self, now: float) -> None:
        self._last_publish = now
        self._sink(self._source.snapshot())
