from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request

from ..core.config import Settings, settings as default_settings
from ..db.sqlite import SQLiteAssetStore, SQLiteBusinessStore, SQLiteJobStore
from ..services.gemini import GeminiImageClient, ImageModelClient
from ..services.generation import resolve_run_mode
from ..services.references import ImageFetcher, fetch_image
from ..services.storage import LocalAssetStorage


@dataclass
class AppServices:
    jobs: SQLiteJobStore
    assets: SQLiteAssetStore
    businesses: SQLiteBusinessStore
    storage: LocalAssetStorage
    image_client: ImageModelClient
    fetcher: ImageFetcher = fetch_image
    run_mode: str = "background"

    def pipeline_deps(self) -> Dict[str, Any]:
        return {
            "jobs": self.jobs,
            "assets": self.assets,
            "storage": self.storage,
            "image_client": self.image_client,
            "fetcher": self.fetcher,
        }


def build_services(cfg: Optional[Settings] = None) -> AppServices:
    cfg = cfg or default_settings
    return AppServices(
        jobs=SQLiteJobStore(cfg.db_path),
        assets=SQLiteAssetStore(cfg.db_path),
        businesses=SQLiteBusinessStore(cfg.db_path),
        storage=LocalAssetStorage(cfg.storage_root / "assets", cfg.public_base_url),
        image_client=GeminiImageClient(),
        run_mode=resolve_run_mode(cfg.run_mode),
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services
