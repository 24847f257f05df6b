"""
Registry of live sessions fed over HTTP.

Each session owns its own aggregator and a lock that serializes batches,
resets and stops for that session; the registry lock only guards the
id -> session mapping.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from kbforce.config import AccelerationSample, SessionConfig
from kbforce.quality.validation import ValidatingAggregator
from kbforce.repdetect.threshold import RepSummary
from kbforce.session.aggregator import SessionAggregator, SessionSnapshot, SessionSummary
from kbforce.store.sessions import SessionNotFound, SessionStore


@dataclass
class LiveSession:
    session_id: str
    aggregator: SessionAggregator
    guarded: ValidatingAggregator
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class LiveSessionRegistry:
    def __init__(self) -> None:
        self._sessions: Dict[str, LiveSession] = {}
        self._lock = threading.Lock()

    def start(self, config: SessionConfig, start_time_epoch_ms: Optional[int] = None) -> LiveSession:
        start_ms = start_time_epoch_ms if start_time_epoch_ms is not None else int(time.time() * 1000)
        aggregator = SessionAggregator.from_config(config, start_ms)
        session = LiveSession(
            session_id=uuid.uuid4().hex,
            aggregator=aggregator,
            guarded=ValidatingAggregator(aggregator),
        )
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> LiveSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def ingest(self, session_id: str, samples: List[AccelerationSample]) -> List[RepSummary]:
        """Ingest a batch in order; stops at the first rejected sample.

        Batches for the same session never interleave.
        """
        session = self.get(session_id)
        completed: List[RepSummary] = []
        with session.lock:
            for sample in samples:
                rep = session.guarded.ingest(sample)
                if rep is not None:
                    completed.append(rep)
        return completed

    def snapshot(self, session_id: str) -> SessionSnapshot:
        return self.get(session_id).aggregator.snapshot()

    def reset(self, session_id: str) -> None:
        session = self.get(session_id)
        with session.lock:
            session.guarded.reset()

    def stop(self, session_id: str, exercise_type: str, store: Optional[SessionStore] = None) -> SessionSummary:
        """Finalize and forget a session, persisting it when a store is given.

        Raises:
            SessionNotFound: if the session is unknown or already stopped.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        with session.lock:
            summary = session.aggregator.finalize(exercise_type)
        if store is not None:
            store.save(summary)
        return summary

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)


REGISTRY = LiveSessionRegistry()


def get_registry() -> LiveSessionRegistry:
    return REGISTRY
