from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .config import API_BASE

logger = logging.getLogger(__name__)


class JobNotFound(Exception):
    """The server has no record of the job (never existed or was deleted)."""


@dataclass(frozen=True)
class JobStatus:
    id: str
    status: str
    error_message: Optional[str] = None
    result_asset_id: Optional[str] = None
    asset: Optional[Dict[str, Any]] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "JobStatus":
        return cls(
            id=str(data.get("id", "")),
            status=str(data.get("status", "")),
            error_message=data.get("errorMessage"),
            result_asset_id=data.get("resultAssetId"),
            asset=data.get("asset"),
        )


class JobStatusSource:
    """What a poller needs from the server."""

    def get_status(self, job_id: str) -> JobStatus:
        raise NotImplementedError

    def list_pending(self, business_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError


class JobsApiClient(JobStatusSource):
    def __init__(self, api_base: str = API_BASE, session: Optional[requests.Session] = None, timeout: int = 60):
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def submit(self, payload: Dict[str, Any]) -> str:
        r = self.session.post(f"{self.api_base}/generate-image", json=payload, timeout=self.timeout)
        r.raise_for_status()
        return str(r.json()["jobId"])

    def get_status(self, job_id: str) -> JobStatus:
        r = self.session.get(f"{self.api_base}/generate-image/status/{job_id}", timeout=self.timeout)
        if r.status_code == 404:
            raise JobNotFound(job_id)
        r.raise_for_status()
        return JobStatus.from_json(r.json())

    def list_pending(self, business_id: str) -> List[Dict[str, Any]]:
        # Recovery is best effort: an unreachable server means nothing to recover.
        try:
            r = self.session.get(f"{self.api_base}/generate-image/pending/{business_id}", timeout=self.timeout)
            r.raise_for_status()
            return list(r.json().get("jobs") or [])
        except requests.RequestException as e:
            logger.warning(f"[jobs] could not load pending jobs for {business_id}: {e}")
            return []

    def cancel(self, job_id: str) -> bool:
        try:
            r = self.session.delete(f"{self.api_base}/generate-image/job/{job_id}", timeout=self.timeout)
            return r.ok
        except requests.RequestException as e:
            logger.error(f"[jobs] failed to cancel job {job_id}: {e}")
            return False
