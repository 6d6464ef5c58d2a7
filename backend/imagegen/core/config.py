from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    app_name: str = "brandgen-jobs"
    storage_root: Path = Path(os.getenv("IMAGEGEN_STORAGE_ROOT", "./storage"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Base URL this API is reachable at. Used for public asset links and to
    # resolve relative reference image URLs (e.g. "/artifacts/logo.png").
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

    # background|inline. Inline awaits the whole pipeline before responding,
    # for hosts that kill work once the response is sent.
    run_mode: str = os.getenv("GENERATION_RUN_MODE", "background")

    # Image model (Gemini generateContent REST API)
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", os.getenv("GOOGLE_API_KEY", ""))
    gemini_endpoint: str = os.getenv("GEMINI_ENDPOINT", "https://generativelanguage.googleapis.com/v1beta")
    gemini_timeout_seconds: int = int(os.getenv("GEMINI_TIMEOUT_SECONDS", "300"))

    reference_fetch_timeout_seconds: int = int(os.getenv("REFERENCE_FETCH_TIMEOUT_SECONDS", "30"))

    # Prompts starting with this prefix skip the model call and upload.
    debug_prompt_prefix: str = "debug:"
    debug_placeholder_url: str = os.getenv(
        "DEBUG_PLACEHOLDER_URL", "https://placehold.co/1024x1024/png?text=DEBUG+MODE"
    )

    @property
    def db_path(self) -> Path:
        return self.storage_root / "db" / "imagegen.sqlite3"


settings = Settings()
