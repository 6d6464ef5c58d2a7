from .api_client import JobNotFound, JobsApiClient, JobStatus, JobStatusSource
from .models import ClientJob
from .persistence import JsonFileSnapshotStore, MemorySnapshotStore, SnapshotStore
from .poller import JobPoller
from .registry import JobRegistry
from .scheduler import ManualScheduler, Scheduler, ThreadTimerScheduler
from .sync import BroadcastHub, CrossTabSynchronizer, JobChannel, NullChannel

__all__ = [
    "JobNotFound",
    "JobsApiClient",
    "JobStatus",
    "JobStatusSource",
    "ClientJob",
    "JsonFileSnapshotStore",
    "MemorySnapshotStore",
    "SnapshotStore",
    "JobPoller",
    "JobRegistry",
    "ManualScheduler",
    "Scheduler",
    "ThreadTimerScheduler",
    "BroadcastHub",
    "CrossTabSynchronizer",
    "JobChannel",
    "NullChannel",
]
