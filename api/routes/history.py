from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, Response
from pydantic import ValidationError

from api.schemas import ReplayRequest, SessionSummaryOut
from api.services.replay import replay_recording
from api.services.storage import cleanup_job_dir, get_store, persist_upload
from kbforce.store.sessions import SessionNotFound, SessionStore, StoreError

router = APIRouter(tags=["history"])


@router.get("/history", response_model=List[SessionSummaryOut])
def list_sessions(store: SessionStore = Depends(get_store)) -> List[SessionSummaryOut]:
    try:
        return [SessionSummaryOut.from_summary(s) for s in store.list()]
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/history/{session_id}", response_model=SessionSummaryOut)
def get_session(session_id: str, store: SessionStore = Depends(get_store)) -> SessionSummaryOut:
    try:
        return SessionSummaryOut.from_summary(store.get(session_id))
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=f"No stored session {session_id}") from exc
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.delete("/history/{session_id}", status_code=204)
def delete_session(session_id: str, store: SessionStore = Depends(get_store)) -> Response:
    try:
        deleted = store.delete(session_id)
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"No stored session {session_id}")
    return Response(status_code=204)


@router.post("/replay", response_model=SessionSummaryOut)
async def replay_upload(
    metadata: str = Form(..., description="ReplayRequest as JSON string."),
    file: UploadFile = File(..., description="CSV of x,y,z,epoch_ms samples."),
    store: SessionStore = Depends(get_store),
) -> SessionSummaryOut:
    """
    Replay a recorded session. Metadata is provided as a JSON string in the
    `metadata` form field, and the recording via the `file` field.
    """
    try:
        payload = ReplayRequest.model_validate_json(metadata)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    job_dir, csv_path = await persist_upload(file)
    try:
        summary = await replay_recording(payload, csv_path, store)
    finally:
        cleanup_job_dir(job_dir)
    return SessionSummaryOut.from_summary(summary)
