from __future__ import annotations

import os

POLL_INTERVAL_SECONDS = 2.0
MAX_POLL_SECONDS = 5 * 60

SNAPSHOT_KEY = "background_jobs"
JOB_SYNC_CHANNEL = "job_sync"


def _get_api_base() -> str:
    return os.getenv("API_BASE", "http://127.0.0.1:8000").rstrip("/")


API_BASE = _get_api_base()
