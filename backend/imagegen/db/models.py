from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

TERMINAL_STATUSES = frozenset({JOB_COMPLETED, JOB_FAILED})


@dataclass(frozen=True)
class JobRecord:
    job_id: str
    business_id: str
    status: str
    prompt: str
    aspect_ratio: str
    style_id: Optional[str]
    subject_id: Optional[str]
    model_tier: str
    strategy_json: Optional[str]
    result_asset_id: Optional[str]
    error_message: Optional[str]
    created_at: str
    updated_at: str

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def strategy(self) -> Optional[Any]:
        if not self.strategy_json:
            return None
        return json.loads(self.strategy_json)


@dataclass(frozen=True)
class AssetRecord:
    asset_id: str
    business_id: str
    type: str
    content: str
    prompt: str
    style_preset: Optional[str]
    style_id: Optional[str]
    subject_id: Optional[str]
    aspect_ratio: str
    model_tier: str
    created_at: str


@dataclass(frozen=True)
class BusinessRecord:
    business_id: str
    name: str
    industry: str
    logo_url: Optional[str]
    profile_json: str

    def profile(self) -> Dict[str, Any]:
        """Decoded brand profile (colors, voice, adPreferences).

        Malformed rows decode to an empty profile rather than failing the
        whole generation.
        """
        try:
            data = json.loads(self.profile_json or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
