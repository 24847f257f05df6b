"""
Service helpers for replaying an uploaded recording through the core pipeline.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

from fastapi import HTTPException

from api.schemas import ReplayRequest
from kbforce.config import AccelerationSample, SessionConfig
from kbforce.io.samples import SampleFormatError, load_samples_csv
from kbforce.quality.validation import SampleRejected, ValidatingAggregator
from kbforce.session.aggregator import SessionAggregator, SessionSummary
from kbforce.store.sessions import SessionStore, StoreError


def _run_replay(payload: ReplayRequest, samples: List[AccelerationSample], body_mass_kg: float) -> SessionSummary:
    if not samples:
        raise ValueError("Recording contains no samples.")
    config = SessionConfig(
        kettlebell_mass_kg=payload.kettlebell_mass_kg,
        body_mass_kg=body_mass_kg,
        threshold_norm=payload.threshold_norm,
        exit_ratio=payload.exit_ratio,
    )
    start_ms = payload.start_time_epoch_ms if payload.start_time_epoch_ms is not None else samples[0].epoch_ms
    end_ms = samples[-1].epoch_ms
    aggregator = SessionAggregator.from_config(config, start_ms, clock=lambda: end_ms)
    guarded = ValidatingAggregator(aggregator)
    for sample in samples:
        try:
            guarded.ingest(sample)
        except SampleRejected:
            if payload.strict:
                raise
    return aggregator.finalize(payload.exercise_type)


async def replay_recording(payload: ReplayRequest, csv_path: Path, store: SessionStore) -> SessionSummary:
    """
    Parse a staged CSV, replay it and optionally persist the summary.
    """
    try:
        samples = await asyncio.to_thread(load_samples_csv, csv_path)
        if payload.body_mass_kg is not None:
            body = payload.body_mass_kg
        else:
            body = (await asyncio.to_thread(store.load_profile)).body_mass_kg
        summary = await asyncio.to_thread(_run_replay, payload, samples, body)
        if payload.persist:
            await asyncio.to_thread(store.save, summary)
    except (SampleFormatError, SampleRejected, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return summary
