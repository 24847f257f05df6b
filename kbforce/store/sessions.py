"""On-disk JSON store for finished sessions and the user profile.

Sessions live in a single ``sessions.json`` array, the profile in
``user_profile.json``. Files are small and human-readable; every write goes
through a temporary file and an atomic rename.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from kbforce.config import UserProfile, data_dir
from kbforce.repdetect.threshold import RepSummary
from kbforce.session.aggregator import SessionSummary

logger = logging.getLogger(__name__)

SESSIONS_FILE = "sessions.json"
PROFILE_FILE = "user_profile.json"


class StoreError(RuntimeError):
    """Raised when a store file cannot be read or written."""


class SessionNotFound(KeyError):
    """Raised when a session id is not present in the store."""


def _rep_to_obj(rep: RepSummary) -> Dict[str, Any]:
    return {
        "id": rep.id,
        "start_time": rep.start_time,
        "end_time": rep.end_time,
        "peak_force_n": rep.peak_force_n,
        "peak_force_norm": rep.peak_force_norm,
        "impulse_ns": rep.impulse_ns,
    }


def _rep_from_obj(obj: Dict[str, Any]) -> RepSummary:
    return RepSummary(
        id=obj["id"],
        start_time=obj["start_time"],
        end_time=obj["end_time"],
        peak_force_n=obj["peak_force_n"],
        peak_force_norm=obj["peak_force_norm"],
        impulse_ns=obj["impulse_ns"],
    )


def session_to_obj(summary: SessionSummary) -> Dict[str, Any]:
    """Convert a summary to a JSON-ready dict."""
    return {
        "id": summary.id,
        "date": summary.date.isoformat(),
        "exercise_type": summary.exercise_type,
        "kettlebell_mass_kg": summary.kettlebell_mass_kg,
        "body_mass_kg": summary.body_mass_kg,
        "duration_sec": summary.duration_sec,
        "reps": [_rep_to_obj(rep) for rep in summary.reps],
        "session_peak_force_n": summary.session_peak_force_n,
        "session_peak_force_norm": summary.session_peak_force_norm,
        "session_impulse_ns": summary.session_impulse_ns,
    }


def session_from_obj(obj: Dict[str, Any]) -> SessionSummary:
    try:
        return SessionSummary(
            id=obj["id"],
            date=datetime.fromisoformat(obj["date"]),
            exercise_type=obj["exercise_type"],
            kettlebell_mass_kg=obj["kettlebell_mass_kg"],
            body_mass_kg=obj["body_mass_kg"],
            duration_sec=obj["duration_sec"],
            reps=tuple(_rep_from_obj(rep) for rep in obj.get("reps", [])),
            session_peak_force_n=obj["session_peak_force_n"],
            session_peak_force_norm=obj["session_peak_force_norm"],
            session_impulse_ns=obj["session_impulse_ns"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StoreError(f"Malformed session record: {exc}") from exc


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StoreError(f"Failed to write {path}: {exc}") from exc


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise StoreError(f"Invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise StoreError(f"Failed to read {path}: {exc}") from exc


class SessionStore:
    """Durable list of :class:`SessionSummary` records plus the user profile.

    Read-modify-write cycles on the session list hold an instance lock, so one
    store shared between request threads does not lose concurrent saves.
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root) if root is not None else data_dir()
        self._lock = threading.RLock()

    @property
    def sessions_path(self) -> Path:
        return self.root / SESSIONS_FILE

    @property
    def profile_path(self) -> Path:
        return self.root / PROFILE_FILE

    def _load_all(self) -> List[SessionSummary]:
        if not self.sessions_path.exists():
            return []
        payload = _read_json(self.sessions_path)
        if not isinstance(payload, list):
            raise StoreError(f"{self.sessions_path} does not contain a list")
        return [session_from_obj(obj) for obj in payload]

    def _save_all(self, sessions: List[SessionSummary]) -> None:
        _write_json_atomic(self.sessions_path, [session_to_obj(s) for s in sessions])

    def list(self) -> List[SessionSummary]:
        """Return all sessions, newest first."""
        return sorted(self._load_all(), key=lambda s: s.date, reverse=True)

    def get(self, session_id: str) -> SessionSummary:
        for summary in self._load_all():
            if summary.id == session_id:
                return summary
        raise SessionNotFound(session_id)

    def save(self, summary: SessionSummary) -> None:
        with self._lock:
            sessions = [s for s in self._load_all() if s.id != summary.id]
            sessions.append(summary)
            sessions.sort(key=lambda s: s.date, reverse=True)
            self._save_all(sessions)
        logger.info("saved session %s (%d reps)", summary.id, summary.rep_count)

    def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False when the id was not stored."""
        with self._lock:
            sessions = self._load_all()
            remaining = [s for s in sessions if s.id != session_id]
            if len(remaining) == len(sessions):
                return False
            self._save_all(remaining)
        logger.info("deleted session %s", session_id)
        return True

    def load_profile(self) -> UserProfile:
        """Load the profile, writing the default one on first use."""
        with self._lock:
            if not self.profile_path.exists():
                profile = UserProfile()
                self.save_profile(profile)
                return profile
            payload = _read_json(self.profile_path)
        try:
            return UserProfile(**payload)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Malformed profile in {self.profile_path}: {exc}") from exc

    def save_profile(self, profile: UserProfile) -> None:
        with self._lock:
            _write_json_atomic(self.profile_path, asdict(profile))
