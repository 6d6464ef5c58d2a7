from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

PENDING = "pending"
POLLING = "polling"
COMPLETE = "complete"
FAILED = "failed"

ACTIVE_STATUSES = frozenset({PENDING, POLLING})

# Fields a caller may change through JobRegistry.update_job. Identity,
# ownership and outcome are owned by the registry and its pollers.
PRESENTATIONAL_FIELDS = frozenset(
    {
        "type",
        "message_id",
        "aspect_ratio",
        "style_name",
        "style_id",
        "subject_id",
        "model_tier",
        "prompt",
        "progress",
        "animation_phase",
    }
)


@dataclass
class ClientJob:
    """A job as one tab sees it.

    ``type`` names the UI surface that submitted it (``generator`` or
    ``chat``); ``message_id`` tells a chat surface where to put the result.
    ``created_at`` is the client clock in epoch seconds.
    """

    id: str
    type: str
    business_id: str
    created_at: float
    status: str = PENDING
    message_id: Optional[str] = None
    aspect_ratio: Optional[str] = None
    style_name: Optional[str] = None
    style_id: Optional[str] = None
    subject_id: Optional[str] = None
    model_tier: Optional[str] = None
    prompt: Optional[str] = None
    progress: Optional[float] = None
    animation_phase: Optional[str] = None
    result: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientJob":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
