"""Live session state: running force telemetry, rep list and final summary.

One :class:`SessionAggregator` corresponds to one session. Every mutation
happens inside a single lock so a reader on another thread (an HTTP handler,
a display loop) always sees the state either before or after a whole
``ingest`` call, never part-way through one.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, Union

from kbforce.config import (
    DEFAULT_EXIT_RATIO,
    DEFAULT_THRESHOLD_NORM,
    AccelerationSample,
    ExerciseType,
    SessionConfig,
)
from kbforce.repdetect.threshold import RepDetector, RepSummary
from kbforce.signals.force import compute_force

logger = logging.getLogger(__name__)

EpochClock = Callable[[], float]
RepCallback = Callable[[RepSummary], None]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent view of a live session taken between two samples."""

    current_force_n: float
    current_force_norm: float
    peak_force_n: float
    peak_force_norm: float
    session_impulse_ns: float
    rep_count: int
    in_rep: bool
    elapsed_sec: float


@dataclass(frozen=True)
class SessionSummary:
    """Finalized record of a session, ready to hand to a store.

    ``session_impulse_ns`` is the sum of rep impulses when at least one rep
    was detected, otherwise the impulse integrated over the whole session.
    """

    exercise_type: str
    kettlebell_mass_kg: float
    body_mass_kg: float
    duration_sec: float
    reps: Tuple[RepSummary, ...]
    session_peak_force_n: float
    session_peak_force_norm: float
    session_impulse_ns: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def rep_count(self) -> int:
        return len(self.reps)


class SessionAggregator:
    """Turns a time-ordered sample stream into force telemetry and reps.

    Samples must arrive in non-decreasing timestamp order; wrap the
    aggregator in :class:`kbforce.quality.validation.ValidatingAggregator`
    when the source cannot guarantee that.
    """

    def __init__(
        self,
        kettlebell_mass_kg: float,
        body_mass_kg: float,
        start_time_epoch_ms: int,
        *,
        threshold_norm: float = DEFAULT_THRESHOLD_NORM,
        exit_ratio: float = DEFAULT_EXIT_RATIO,
        clock: Optional[EpochClock] = None,
        on_rep: Optional[RepCallback] = None,
    ) -> None:
        self._config = SessionConfig(
            kettlebell_mass_kg=kettlebell_mass_kg,
            body_mass_kg=body_mass_kg,
            threshold_norm=threshold_norm,
            exit_ratio=exit_ratio,
        )
        self._start_time_epoch_ms = start_time_epoch_ms
        self._clock = clock or wall_clock_ms
        self._on_rep = on_rep
        self._lock = threading.Lock()
        self._detector = RepDetector(threshold_norm=threshold_norm, exit_ratio=exit_ratio)
        self._clear()

    @classmethod
    def from_config(
        cls,
        config: SessionConfig,
        start_time_epoch_ms: int,
        *,
        clock: Optional[EpochClock] = None,
        on_rep: Optional[RepCallback] = None,
    ) -> "SessionAggregator":
        return cls(
            config.kettlebell_mass_kg,
            config.body_mass_kg,
            start_time_epoch_ms,
            threshold_norm=config.threshold_norm,
            exit_ratio=config.exit_ratio,
            clock=clock,
            on_rep=on_rep,
        )

    def _clear(self) -> None:
        self._current_force_n = 0.0
        self._current_force_norm = 0.0
        self._peak_force_n = 0.0
        self._peak_force_norm = 0.0
        self._session_impulse_ns = 0.0
        self._reps: List[RepSummary] = []
        self._last_epoch_ms: Optional[int] = None
        self._last_time_sec = 0.0

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def kettlebell_mass_kg(self) -> float:
        return self._config.kettlebell_mass_kg

    @property
    def body_mass_kg(self) -> float:
        return self._config.body_mass_kg

    @property
    def start_time_epoch_ms(self) -> int:
        return self._start_time_epoch_ms

    @property
    def last_epoch_ms(self) -> Optional[int]:
        with self._lock:
            return self._last_epoch_ms

    @property
    def current_force_n(self) -> float:
        with self._lock:
            return self._current_force_n

    @property
    def current_force_norm(self) -> float:
        with self._lock:
            return self._current_force_norm

    @property
    def peak_force_n(self) -> float:
        with self._lock:
            return self._peak_force_n

    @property
    def peak_force_norm(self) -> float:
        with self._lock:
            return self._peak_force_norm

    @property
    def session_impulse_ns(self) -> float:
        """Impulse integrated over every sample, in or out of a rep."""
        with self._lock:
            return self._session_impulse_ns

    @property
    def reps(self) -> Tuple[RepSummary, ...]:
        with self._lock:
            return tuple(self._reps)

    def ingest(
        self, sample: AccelerationSample, epoch_ms: Optional[int] = None
    ) -> Optional[RepSummary]:
        """Process one sample.

        Args:
            sample: Acceleration reading in g.
            epoch_ms: Timestamp override; defaults to ``sample.epoch_ms``.

        Returns:
            The rep completed by this sample, if any.
        """

        stamp = sample.epoch_ms if epoch_ms is None else epoch_ms
        reading = compute_force(sample, self._config.kettlebell_mass_kg, self._config.body_mass_kg)

        with self._lock:
            if self._last_epoch_ms is None:
                dt_sec = 0.0
            else:
                dt_sec = (stamp - self._last_epoch_ms) / 1000.0
            self._last_epoch_ms = stamp
            time_since_start = (stamp - self._start_time_epoch_ms) / 1000.0
            self._last_time_sec = time_since_start

            self._current_force_n = reading.force_n
            self._current_force_norm = reading.force_norm
            self._peak_force_n = max(self._peak_force_n, reading.force_n)
            self._peak_force_norm = max(self._peak_force_norm, reading.force_norm)
            self._session_impulse_ns += reading.force_n * dt_sec

            rep = self._detector.handle_sample(
                time_since_start, reading.force_n, reading.force_norm, dt_sec
            )
            if rep is not None:
                self._reps.append(rep)
                rep_number = len(self._reps)

        if rep is not None:
            logger.debug("rep %d detected (peak %.1f N)", rep_number, rep.peak_force_n)
            if self._on_rep is not None:
                self._on_rep(rep)
        return rep

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                current_force_n=self._current_force_n,
                current_force_norm=self._current_force_norm,
                peak_force_n=self._peak_force_n,
                peak_force_norm=self._peak_force_norm,
                session_impulse_ns=self._session_impulse_ns,
                rep_count=len(self._reps),
                in_rep=self._detector.in_rep,
                elapsed_sec=self._last_time_sec,
            )

    def finalize(self, exercise_type: Union[ExerciseType, str]) -> SessionSummary:
        """Package the current state into a :class:`SessionSummary`.

        Running state is left untouched. A rep still open at this point is
        not included.
        """

        label = exercise_type.value if isinstance(exercise_type, ExerciseType) else str(exercise_type)
        now_ms = self._clock()
        duration_sec = max((now_ms - self._start_time_epoch_ms) / 1000.0, 0.0)

        with self._lock:
            reps = tuple(self._reps)
            if reps:
                impulse = sum(rep.impulse_ns for rep in reps)
            else:
                impulse = self._session_impulse_ns
            if self._detector.in_rep:
                logger.info("finalizing with a rep in progress; it will not be recorded")
            summary = SessionSummary(
                exercise_type=label,
                kettlebell_mass_kg=self._config.kettlebell_mass_kg,
                body_mass_kg=self._config.body_mass_kg,
                duration_sec=duration_sec,
                reps=reps,
                session_peak_force_n=self._peak_force_n,
                session_peak_force_norm=self._peak_force_norm,
                session_impulse_ns=impulse,
            )

        logger.info(
            "session %s finalized: %s, %d reps, %.1fs",
            summary.id,
            summary.exercise_type,
            summary.rep_count,
            summary.duration_sec,
        )
        return summary

    def reset(self) -> None:
        """Clear all totals and reps; the next sample again counts as the first."""
        with self._lock:
            self._clear()
            self._detector.reset()
        logger.debug("session aggregator reset")
