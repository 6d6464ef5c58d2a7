from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .config import JOB_SYNC_CHANNEL
from .models import ClientJob

if TYPE_CHECKING:
    from .registry import JobRegistry

logger = logging.getLogger(__name__)

JOBS_UPDATED = "jobs_updated"

Message = Dict[str, Any]
Listener = Callable[[Message], None]


class JobChannel:
    """Publish/subscribe port shared by the tabs of one user."""

    def publish(self, jobs: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullChannel(JobChannel):
    """Single-tab deployments: nothing to tell, nobody listening."""

    def publish(self, jobs: List[Dict[str, Any]]) -> None:
        pass

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return lambda: None


class BroadcastHub:
    """In-process stand-in for a browser broadcast channel.

    Every :class:`HubChannel` opened on the same topic receives the
    messages posted by the others, never its own.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._endpoints: Dict[str, List["HubChannel"]] = {}

    def open(self, topic: str = JOB_SYNC_CHANNEL) -> "HubChannel":
        channel = HubChannel(self, topic)
        with self._lock:
            self._endpoints.setdefault(topic, []).append(channel)
        return channel

    def _detach(self, channel: "HubChannel") -> None:
        with self._lock:
            peers = self._endpoints.get(channel.topic, [])
            if channel in peers:
                peers.remove(channel)

    def _deliver(self, sender: "HubChannel", message: Message) -> None:
        with self._lock:
            peers = [c for c in self._endpoints.get(sender.topic, []) if c is not sender]
        for peer in peers:
            peer._receive(message)


class HubChannel(JobChannel):
    def __init__(self, hub: BroadcastHub, topic: str):
        self.hub = hub
        self.topic = topic
        self._listeners: List[Listener] = []

    def publish(self, jobs: List[Dict[str, Any]]) -> None:
        self.hub._deliver(self, {"type": JOBS_UPDATED, "jobs": list(jobs)})

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _receive(self, message: Message) -> None:
        for listener in list(self._listeners):
            listener(message)

    def close(self) -> None:
        self._listeners.clear()
        self.hub._detach(self)


class CrossTabSynchronizer:
    """Relays a registry's unfinished jobs to and from sibling tabs.

    Incoming jobs are merged additively: ids this tab already knows keep
    their local state. Outcomes are never taken from a broadcast; each tab
    learns them by polling the server itself.
    """

    def __init__(self, registry: "JobRegistry", channel: JobChannel):
        self.registry = registry
        self.channel = channel
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_message)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def broadcast(self, jobs: List[ClientJob]) -> None:
        if not jobs:
            return
        self.channel.publish([j.to_dict() for j in jobs])

    def _on_message(self, message: Message) -> None:
        if message.get("type") != JOBS_UPDATED:
            return
        incoming: List[ClientJob] = []
        for raw in message.get("jobs") or []:
            if not isinstance(raw, dict):
                continue
            try:
                incoming.append(ClientJob.from_dict(raw))
            except TypeError as e:
                logger.warning(f"[jobs] dropping malformed job from another tab: {e}")
        if incoming:
            self.registry.merge_remote(incoming)
