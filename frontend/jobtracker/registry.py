from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set

from .api_client import JobStatus, JobStatusSource
from .config import MAX_POLL_SECONDS, POLL_INTERVAL_SECONDS
from .models import COMPLETE, POLLING, PRESENTATIONAL_FIELDS, ClientJob
from .persistence import MemorySnapshotStore, SnapshotStore
from .poller import JobPoller
from .scheduler import Scheduler
from .sync import CrossTabSynchronizer, JobChannel, NullChannel

logger = logging.getLogger(__name__)


def _parse_server_time(value: Any, default: float) -> float:
    if not value:
        return default
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return default


class JobRegistry:
    """Everything one tab knows about its background generation jobs.

    The registry owns an in-memory map of :class:`ClientJob` plus one
    :class:`JobPoller` per unfinished job. After each change the unfinished
    subset is written to ``snapshots`` (or the snapshot is cleared when
    there is none) and, when the set of unfinished ids changed, published on
    ``channel`` for sibling tabs.

    Completed jobs stay in the map with ``status == "complete"`` and their
    ``result`` until the UI removes them; failed, missing and timed-out jobs
    are dropped.
    """

    def __init__(
        self,
        business_id: Optional[str],
        *,
        status_source: JobStatusSource,
        scheduler: Scheduler,
        snapshots: Optional[SnapshotStore] = None,
        channel: Optional[JobChannel] = None,
        on_result: Optional[Callable[[ClientJob], None]] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_time: float = MAX_POLL_SECONDS,
    ):
        self.business_id = business_id
        self.status_source = status_source
        self.scheduler = scheduler
        self.snapshots = snapshots or MemorySnapshotStore()
        self.on_result = on_result
        self.poll_interval = poll_interval
        self.max_poll_time = max_poll_time

        self._jobs: Dict[str, ClientJob] = {}
        self._pollers: Dict[str, JobPoller] = {}
        # Ids this tab dropped; sibling broadcasts must not bring them back.
        self._forgotten: Set[str] = set()
        self._last_broadcast: FrozenSet[str] = frozenset()
        self._lock = threading.RLock()
        self.sync = CrossTabSynchronizer(self, channel or NullChannel())

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Restore jobs from the local snapshot and from the server.

        Snapshot entries older than the poll ceiling, or already finished,
        are dropped. The server's pending list then adds any job this tab
        never cached, e.g. after a crash.
        """
        self.sync.start()
        self._restore_snapshot()
        if self.business_id:
            self._recover_from_server(self.business_id)

    def set_business(self, business_id: Optional[str]) -> None:
        with self._lock:
            self.business_id = business_id
        if business_id:
            self._recover_from_server(business_id)

    def close(self) -> None:
        """Stop polling and listening. The snapshot is left in place for the next load."""
        self.sync.stop()
        with self._lock:
            pollers = list(self._pollers.values())
            self._pollers.clear()
        for poller in pollers:
            poller.stop()

    def _restore_snapshot(self) -> None:
        cutoff = self.scheduler.now() - self.max_poll_time
        restored: List[ClientJob] = []
        for raw in self.snapshots.load():
            try:
                job = ClientJob.from_dict(raw)
                fresh = job.created_at > cutoff
            except TypeError as e:
                logger.warning(f"[jobs] skipping malformed snapshot entry: {e}")
                continue
            if job.is_active and fresh:
                restored.append(job)

        with self._lock:
            for job in restored:
                if job.id not in self._jobs:
                    job.status = POLLING
                    self._jobs[job.id] = job
                    self._start_polling(job.id)
            outgoing = self._commit()
        self._broadcast(outgoing)
        if restored:
            logger.info(f"[jobs] resumed {len(restored)} job(s) from snapshot")

    def _recover_from_server(self, business_id: str) -> None:
        server_jobs = self.status_source.list_pending(business_id)
        if not server_jobs:
            return
        logger.info(f"[jobs] found {len(server_jobs)} pending job(s) on the server")
        now = self.scheduler.now()
        with self._lock:
            for raw in server_jobs:
                job_id = str(raw.get("id") or "")
                if not job_id:
                    continue
                if job_id not in self._jobs:
                    self._jobs[job_id] = ClientJob(
                        id=job_id,
                        type="generator",
                        business_id=business_id,
                        status=POLLING,
                        aspect_ratio=raw.get("aspectRatio"),
                        style_id=raw.get("styleId"),
                        subject_id=raw.get("subjectId"),
                        model_tier=raw.get("modelTier"),
                        prompt=raw.get("prompt"),
                        animation_phase="cruise",
                        created_at=_parse_server_time(raw.get("createdAt"), now),
                    )
                if self._jobs[job_id].is_active:
                    self._start_polling(job_id)
            outgoing = self._commit()
        self._broadcast(outgoing)

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------

    def add_job(
        self,
        job_id: str,
        job_type: str = "generator",
        *,
        business_id: Optional[str] = None,
        **fields: Any,
    ) -> ClientJob:
        """Track a newly submitted job and start polling it."""
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is not None:
                return existing
            job = ClientJob(
                id=job_id,
                type=job_type,
                business_id=business_id or self.business_id or "",
                created_at=fields.pop("created_at", None) or self.scheduler.now(),
                status=POLLING,
                **{k: v for k, v in fields.items() if k in PRESENTATIONAL_FIELDS},
            )
            self._forgotten.discard(job_id)
            # newest first
            self._jobs = {job_id: job, **self._jobs}
            self._start_polling(job_id)
            outgoing = self._commit()
        self._broadcast(outgoing)
        return job

    def remove_job(self, job_id: str) -> None:
        with self._lock:
            self._drop(job_id)
            self._forgotten.add(job_id)
            outgoing = self._commit()
        self._broadcast(outgoing)

    def update_job(self, job_id: str, **updates: Any) -> Optional[ClientJob]:
        """Patch presentational fields. Identity, status and result are not patchable."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            for key, value in updates.items():
                if key in PRESENTATIONAL_FIELDS:
                    setattr(job, key, value)
                else:
                    logger.debug(f"[jobs] ignoring update of {key!r} on {job_id}")
            outgoing = self._commit()
        self._broadcast(outgoing)
        return job

    def get_job(self, job_id: str) -> Optional[ClientJob]:
        with self._lock:
            return self._jobs.get(job_id)

    @property
    def jobs(self) -> List[ClientJob]:
        with self._lock:
            return list(self._jobs.values())

    def get_jobs_by_type(self, job_type: str) -> List[ClientJob]:
        return [j for j in self.jobs if j.type == job_type]

    def get_jobs_for_business(self, business_id: str) -> List[ClientJob]:
        return [j for j in self.jobs if j.business_id == business_id]

    def clear_jobs_for_business(self, business_id: str) -> None:
        with self._lock:
            for job_id in [j.id for j in self._jobs.values() if j.business_id == business_id]:
                self._drop(job_id)
            outgoing = self._commit()
        self._broadcast(outgoing)

    def is_tracking(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            return job is not None and job.is_active

    def is_polling(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._pollers

    def merge_remote(self, incoming: List[ClientJob]) -> List[str]:
        """Add jobs announced by another tab that this tab has never seen.

        Known ids are left exactly as they are. Returns the ids that were
        added.
        """
        added: List[str] = []
        with self._lock:
            for job in incoming:
                if not job.is_active or job.id in self._forgotten:
                    continue
                if job.id in self._jobs:
                    continue
                job.status = POLLING
                job.result = None
                self._jobs[job.id] = job
                self._start_polling(job.id)
                added.append(job.id)
            outgoing = self._commit() if added else None
        self._broadcast(outgoing)
        if added:
            logger.info(f"[jobs] picked up {len(added)} job(s) from another tab")
        return added

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _start_polling(self, job_id: str) -> None:
        if job_id in self._pollers:
            return
        poller = JobPoller(
            job_id,
            status_source=self.status_source,
            scheduler=self.scheduler,
            is_live=self.is_tracking,
            on_complete=self._on_complete,
            on_evict=self._on_evict,
            interval=self.poll_interval,
            max_poll_time=self.max_poll_time,
        )
        self._pollers[job_id] = poller
        poller.start()

    def _drop(self, job_id: str) -> None:
        poller = self._pollers.pop(job_id, None)
        if poller is not None:
            poller.stop()
        self._jobs.pop(job_id, None)

    def _on_complete(self, job_id: str, status: JobStatus) -> None:
        with self._lock:
            self._pollers.pop(job_id, None)
            job = self._jobs.get(job_id)
            if job is None or not job.is_active:
                return
            job.status = COMPLETE
            job.result = (status.asset or {}).get("content")
            outgoing = self._commit()
        self._broadcast(outgoing)
        if self.on_result is not None:
            self.on_result(job)

    def _on_evict(self, job_id: str, reason: str) -> None:
        with self._lock:
            self._pollers.pop(job_id, None)
            if job_id not in self._jobs:
                return
            self._jobs.pop(job_id)
            self._forgotten.add(job_id)
            outgoing = self._commit()
        self._broadcast(outgoing)
        logger.info(f"[jobs] dropped job {job_id} ({reason})")

    def _commit(self) -> Optional[List[ClientJob]]:
        """Persist the unfinished set; return it if siblings need to hear about it.

        Must be called with the lock held. Publishing happens after the
        lock is released.
        """
        active = [j for j in self._jobs.values() if j.is_active]
        if active:
            self.snapshots.save([j.to_dict() for j in active])
        else:
            self.snapshots.clear()

        ids = frozenset(j.id for j in active)
        if ids == self._last_broadcast:
            return None
        self._last_broadcast = ids
        if not active:
            return None
        return [ClientJob.from_dict(j.to_dict()) for j in active]

    def _broadcast(self, jobs: Optional[List[ClientJob]]) -> None:
        if jobs:
            self.sync.broadcast(jobs)
