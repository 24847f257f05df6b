"""Hysteresis threshold rep detection on normalized force.

A rep starts when ``force_norm`` rises above the entry threshold and ends on
the first sample below ``threshold_norm * exit_ratio``. The gap between the
two levels keeps force oscillating around a single boundary from splitting
one rep into several.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from kbforce.config import DEFAULT_EXIT_RATIO, DEFAULT_THRESHOLD_NORM, check_thresholds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepSummary:
    """Finalized record of one repetition.

    Times are seconds since session start.
    """

    start_time: float
    end_time: float
    peak_force_n: float
    peak_force_norm: float
    impulse_ns: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def duration_sec(self) -> float:
        return self.end_time - self.start_time


@dataclass
class RepAccumulator:
    """Running totals for the rep currently being recorded."""

    start_time: float
    end_time: float
    peak_force_n: float
    peak_force_norm: float
    impulse_ns: float = 0.0

    def update(self, time: float, force_n: float, force_norm: float, dt_sec: float) -> None:
        self.end_time = time
        self.peak_force_n = max(self.peak_force_n, force_n)
        self.peak_force_norm = max(self.peak_force_norm, force_norm)
        self.impulse_ns += force_n * dt_sec

    def to_summary(self) -> RepSummary:
        return RepSummary(
            start_time=self.start_time,
            end_time=self.end_time,
            peak_force_n=self.peak_force_n,
            peak_force_norm=self.peak_force_norm,
            impulse_ns=self.impulse_ns,
        )


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class InRep:
    accumulator: RepAccumulator


DetectorState = Union[Idle, InRep]

IDLE = Idle()


class RepDetector:
    """Two-state rep segmenter fed one derived force sample at a time."""

    def __init__(
        self,
        threshold_norm: float = DEFAULT_THRESHOLD_NORM,
        exit_ratio: float = DEFAULT_EXIT_RATIO,
    ) -> None:
        check_thresholds(threshold_norm, exit_ratio)
        self._threshold_norm = threshold_norm
        self._exit_ratio = exit_ratio
        self._state: DetectorState = IDLE

    @property
    def threshold_norm(self) -> float:
        return self._threshold_norm

    @property
    def exit_threshold_norm(self) -> float:
        return self._threshold_norm * self._exit_ratio

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def in_rep(self) -> bool:
        return isinstance(self._state, InRep)

    def handle_sample(
        self, time: float, force_n: float, force_norm: float, dt_sec: float
    ) -> Optional[RepSummary]:
        """Advance the state machine by one sample.

        Returns:
            The completed :class:`RepSummary` when this sample ends a rep,
            otherwise ``None``.
        """

        state = self._state
        if isinstance(state, Idle):
            if force_norm > self._threshold_norm:
                self._state = InRep(
                    RepAccumulator(
                        start_time=time,
                        end_time=time,
                        peak_force_n=force_n,
                        peak_force_norm=force_norm,
                    )
                )
                logger.debug("rep started at t=%.3fs (norm=%.3f)", time, force_norm)
            return None

        acc = state.accumulator
        acc.update(time, force_n, force_norm, dt_sec)
        if force_norm < self.exit_threshold_norm:
            self._state = IDLE
            rep = acc.to_summary()
            logger.debug(
                "rep finished %.3f-%.3fs peak=%.1fN impulse=%.2fNs",
                rep.start_time,
                rep.end_time,
                rep.peak_force_n,
                rep.impulse_ns,
            )
            return rep
        return None

    def reset(self) -> None:
        """Return to idle, discarding any rep in progress."""
        if self.in_rep:
            logger.debug("discarding open rep on reset")
        self._state = IDLE
