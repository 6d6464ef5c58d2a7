from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from backend.imagegen.api.deps import AppServices
from backend.imagegen.db.models import BusinessRecord
from backend.imagegen.db.sqlite import SQLiteAssetStore, SQLiteBusinessStore, SQLiteJobStore
from backend.imagegen.services.gemini import ContentPart, ImageModelClient
from backend.imagegen.services.storage import LocalAssetStorage

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeImageClient(ImageModelClient):
    def __init__(self, parts: Optional[List[ContentPart]] = None, error: Optional[Exception] = None):
        self.parts = parts if parts is not None else [
            ContentPart.of_text("here you go"),
            ContentPart.of_image(PNG_BYTES, "image/png"),
        ]
        self.error = error
        self.calls: List[dict] = []

    def generate(self, parts: List[ContentPart], *, model_tier: str, aspect_ratio: str) -> List[ContentPart]:
        self.calls.append({"parts": list(parts), "model_tier": model_tier, "aspect_ratio": aspect_ratio})
        if self.error is not None:
            raise self.error
        return list(self.parts)


class FakeFetcher:
    """Serves reference images from a dict; unknown URLs fail like a dead link."""

    def __init__(self, images: Optional[Dict[str, Tuple[bytes, str]]] = None):
        self.images = images or {}
        self.requested: List[str] = []

    def __call__(self, url: str) -> Optional[Tuple[bytes, str]]:
        self.requested.append(url)
        return self.images.get(url)


def make_services(root: Path, image_client: Optional[ImageModelClient] = None, fetcher=None) -> AppServices:
    db_path = root / "db" / "imagegen.sqlite3"
    return AppServices(
        jobs=SQLiteJobStore(db_path),
        assets=SQLiteAssetStore(db_path),
        businesses=SQLiteBusinessStore(db_path),
        storage=LocalAssetStorage(root / "assets", "http://testserver"),
        image_client=image_client or FakeImageClient(),
        fetcher=fetcher or FakeFetcher(),
        run_mode="inline",
    )


def seed_business(svc: AppServices, business_id: str = "biz-1", logo_url: Optional[str] = None) -> BusinessRecord:
    return svc.businesses.upsert_business(
        business_id,
        name="Harbor Coffee",
        industry="Cafe",
        logo_url=logo_url,
        profile={
            "colors": {"primary": "#112233", "secondary": "#445566", "accent": "#ff8800"},
            "voice": {"tone": "warm", "keywords": ["espresso", "sunrise"], "negativeKeywords": ["plastic"]},
            "adPreferences": {"targetAudience": "commuters"},
        },
    )
