from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from api.schemas import (
    IngestResponse,
    RepOut,
    SampleBatch,
    SessionStarted,
    SessionStartRequest,
    SessionSummaryOut,
    SnapshotOut,
    StopRequest,
)
from api.services.live import LiveSessionRegistry, get_registry
from api.services.storage import get_store
from kbforce.config import AccelerationSample, SessionConfig
from kbforce.quality.validation import SampleRejected
from kbforce.store.sessions import SessionNotFound, SessionStore, StoreError

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"No live session {session_id}")


@router.post("", response_model=SessionStarted, status_code=201)
def start_session(
    payload: SessionStartRequest,
    registry: LiveSessionRegistry = Depends(get_registry),
    store: SessionStore = Depends(get_store),
) -> SessionStarted:
    """
    Start a live session. Body mass falls back to the stored user profile.
    """
    try:
        body = payload.body_mass_kg if payload.body_mass_kg is not None else store.load_profile().body_mass_kg
        config = SessionConfig(
            kettlebell_mass_kg=payload.kettlebell_mass_kg,
            body_mass_kg=body,
            threshold_norm=payload.threshold_norm,
            exit_ratio=payload.exit_ratio,
        )
    except (ValueError, StoreError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    session = registry.start(config, payload.start_time_epoch_ms)
    return SessionStarted(
        session_id=session.session_id,
        start_time_epoch_ms=session.aggregator.start_time_epoch_ms,
        body_mass_kg=body,
    )


@router.post("/{session_id}/samples", response_model=IngestResponse)
def ingest_samples(
    session_id: str,
    batch: SampleBatch,
    registry: LiveSessionRegistry = Depends(get_registry),
) -> IngestResponse:
    samples = [AccelerationSample(x=s.x, y=s.y, z=s.z, epoch_ms=s.epoch_ms) for s in batch.samples]
    try:
        reps = registry.ingest(session_id, samples)
    except SessionNotFound as exc:
        raise _not_found(session_id) from exc
    except SampleRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return IngestResponse(accepted=len(samples), reps_completed=[RepOut.from_rep(r) for r in reps])


@router.get("/{session_id}", response_model=SnapshotOut)
def get_snapshot(session_id: str, registry: LiveSessionRegistry = Depends(get_registry)) -> SnapshotOut:
    try:
        return SnapshotOut.from_snapshot(session_id, registry.snapshot(session_id))
    except SessionNotFound as exc:
        raise _not_found(session_id) from exc


@router.post("/{session_id}/reset", response_model=SnapshotOut)
def reset_session(session_id: str, registry: LiveSessionRegistry = Depends(get_registry)) -> SnapshotOut:
    try:
        registry.reset(session_id)
        return SnapshotOut.from_snapshot(session_id, registry.snapshot(session_id))
    except SessionNotFound as exc:
        raise _not_found(session_id) from exc


@router.post("/{session_id}/stop", response_model=SessionSummaryOut)
def stop_session(
    session_id: str,
    payload: StopRequest,
    registry: LiveSessionRegistry = Depends(get_registry),
    store: SessionStore = Depends(get_store),
) -> SessionSummaryOut:
    try:
        summary = registry.stop(session_id, payload.exercise_type, store if payload.persist else None)
    except SessionNotFound as exc:
        raise _not_found(session_id) from exc
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return SessionSummaryOut.from_summary(summary)
