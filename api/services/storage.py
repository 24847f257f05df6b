"""
Storage helpers for the API: the session store and temporary upload files.

Current strategy:
- Finished sessions go to the JSON store under $KBFORCE_DATA_DIR (or ~/.kbforce).
- Uploaded recordings are staged under a per-request directory inside /tmp
  (or $KBFORCE_TMP_DIR) and removed once replayed.
"""

from __future__ import annotations

import os
import shutil
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from fastapi import UploadFile

from kbforce.store.sessions import SessionStore

DEFAULT_TMP_BASE = Path(os.getenv("KBFORCE_TMP_DIR", "/tmp/kbforce-uploads"))
CHUNK_SIZE = 1024 * 1024  # 1 MiB


@lru_cache(maxsize=1)
def get_store() -> SessionStore:
    return SessionStore()


def ensure_tmp_base(base: Path = DEFAULT_TMP_BASE) -> Path:
    base.mkdir(parents=True, exist_ok=True)
    return base


async def persist_upload(upload: UploadFile, base: Path = DEFAULT_TMP_BASE) -> Tuple[Path, Path]:
    """
    Stream an uploaded recording to a unique temp directory.

    Returns:
        job_dir: directory containing the persisted file.
        path: the persisted file.
    """
    ensure_tmp_base(base)
    job_dir = base / uuid.uuid4().hex
    job_dir.mkdir(parents=True, exist_ok=False)

    suffix = Path(upload.filename or "").suffix or ".csv"
    dest = job_dir / f"samples{suffix}"
    with dest.open("wb") as fh:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            fh.write(chunk)
    return job_dir, dest


def cleanup_job_dir(job_dir: Path) -> None:
    """Remove a job directory once its upload has been processed."""
    if job_dir.exists():
        shutil.rmtree(job_dir, ignore_errors=True)
