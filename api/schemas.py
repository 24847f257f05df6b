import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, conlist, field_validator

from kbforce.config import DEFAULT_EXIT_RATIO, DEFAULT_THRESHOLD_NORM, ExerciseType
from kbforce.repdetect.threshold import RepSummary
from kbforce.session.aggregator import SessionSnapshot, SessionSummary


def _finite(value: float, name: str) -> float:
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"{name} must be a finite number")
    return value


class SessionStartRequest(BaseModel):
    """
    Parameters fixed for the lifetime of a live session.
    """
    kettlebell_mass_kg: float = Field(..., gt=0, description="Kettlebell mass in kg.")
    body_mass_kg: Optional[float] = Field(None, gt=0, description="Body mass in kg; defaults to the stored profile.")
    start_time_epoch_ms: Optional[int] = Field(None, ge=0, description="Session start; defaults to server time.")
    threshold_norm: float = Field(DEFAULT_THRESHOLD_NORM, gt=0, description="Rep entry threshold (x body weight).")
    exit_ratio: float = Field(DEFAULT_EXIT_RATIO, gt=0, lt=1, description="Exit threshold as a fraction of entry.")

    @field_validator("kettlebell_mass_kg", "body_mass_kg", "threshold_norm")
    @classmethod
    def values_are_finite(cls, v: Optional[float]) -> Optional[float]:
        return v if v is None else _finite(v, "value")


class SampleIn(BaseModel):
    x: float = Field(..., description="X acceleration in g.")
    y: float = Field(..., description="Y acceleration in g.")
    z: float = Field(..., description="Z acceleration in g.")
    epoch_ms: int = Field(..., ge=0, description="Acquisition time, ms since Unix epoch.")


class SampleBatch(BaseModel):
    samples: conlist(SampleIn, min_length=1) = Field(..., description="Samples in timestamp order.")


class StopRequest(BaseModel):
    exercise_type: str = Field(ExerciseType.SWING.value, min_length=1, description="Exercise label.")
    persist: bool = Field(True, description="Save the summary to history.")


class ReplayRequest(SessionStartRequest):
    exercise_type: str = Field(ExerciseType.SWING.value, min_length=1)
    persist: bool = Field(False, description="Save the summary to history.")
    strict: bool = Field(True, description="Reject the upload on NaN or out-of-order samples.")


class RepOut(BaseModel):
    id: str
    start_time: float
    end_time: float
    peak_force_n: float
    peak_force_norm: float
    impulse_ns: float

    @classmethod
    def from_rep(cls, rep: RepSummary) -> "RepOut":
        return cls(
            id=rep.id,
            start_time=rep.start_time,
            end_time=rep.end_time,
            peak_force_n=rep.peak_force_n,
            peak_force_norm=rep.peak_force_norm,
            impulse_ns=rep.impulse_ns,
        )


class SessionStarted(BaseModel):
    session_id: str
    start_time_epoch_ms: int
    body_mass_kg: float


class IngestResponse(BaseModel):
    accepted: int
    reps_completed: List[RepOut] = Field(default_factory=list)


class SnapshotOut(BaseModel):
    session_id: str
    current_force_n: float
    current_force_norm: float
    peak_force_n: float
    peak_force_norm: float
    session_impulse_ns: float
    rep_count: int
    in_rep: bool
    elapsed_sec: float

    @classmethod
    def from_snapshot(cls, session_id: str, snap: SessionSnapshot) -> "SnapshotOut":
        return cls(
            session_id=session_id,
            current_force_n=snap.current_force_n,
            current_force_norm=snap.current_force_norm,
            peak_force_n=snap.peak_force_n,
            peak_force_norm=snap.peak_force_norm,
            session_impulse_ns=snap.session_impulse_ns,
            rep_count=snap.rep_count,
            in_rep=snap.in_rep,
            elapsed_sec=snap.elapsed_sec,
        )


class SessionSummaryOut(BaseModel):
    id: str
    date: datetime
    exercise_type: str
    kettlebell_mass_kg: float
    body_mass_kg: float
    duration_sec: float
    reps: List[RepOut]
    session_peak_force_n: float
    session_peak_force_norm: float
    session_impulse_ns: float

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "SessionSummaryOut":
        return cls(
            id=summary.id,
            date=summary.date,
            exercise_type=summary.exercise_type,
            kettlebell_mass_kg=summary.kettlebell_mass_kg,
            body_mass_kg=summary.body_mass_kg,
            duration_sec=summary.duration_sec,
            reps=[RepOut.from_rep(rep) for rep in summary.reps],
            session_peak_force_n=summary.session_peak_force_n,
            session_peak_force_norm=summary.session_peak_force_norm,
            session_impulse_ns=summary.session_impulse_ns,
        )
