from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ..core.config import settings

logger = logging.getLogger(__name__)

MODEL_BY_TIER = {
    "flash": "gemini-2.5-flash-image",
    "pro": "gemini-3-pro-image-preview",
    "ultra": "gemini-3-pro-image-preview",
}


class GenerationError(RuntimeError):
    pass


@dataclass(frozen=True)
class ContentPart:
    """One segment of a multimodal request or response.

    Text parts carry ``text``; image parts carry raw ``data`` bytes and a
    ``mime_type`` such as ``image/png``.
    """

    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(text=text)

    @classmethod
    def of_image(cls, data: bytes, mime_type: str) -> "ContentPart":
        return cls(data=data, mime_type=mime_type)

    @property
    def is_image(self) -> bool:
        return self.data is not None and bool(self.mime_type) and self.mime_type.startswith("image/")


def first_image_part(parts: List[ContentPart]) -> ContentPart:
    for part in parts:
        if part.is_image:
            return part
    raise GenerationError("No image in response")


def image_size_for_tier(model_tier: str) -> str:
    return "4K" if model_tier == "ultra" else "2K"


def _to_wire(part: ContentPart) -> Dict[str, Any]:
    if part.data is not None:
        return {
            "inlineData": {
                "mimeType": part.mime_type or "image/png",
                "data": base64.b64encode(part.data).decode("ascii"),
            }
        }
    return {"text": part.text or ""}


def _from_wire(raw: Dict[str, Any]) -> Optional[ContentPart]:
    inline = raw.get("inlineData") or raw.get("inline_data")
    if inline:
        mime = inline.get("mimeType") or inline.get("mime_type") or ""
        return ContentPart.of_image(base64.b64decode(inline.get("data") or ""), mime)
    if "text" in raw:
        return ContentPart.of_text(str(raw["text"]))
    return None


class ImageModelClient:
    """Opaque image generation capability: multimodal parts in, parts out."""

    def generate(self, parts: List[ContentPart], *, model_tier: str, aspect_ratio: str) -> List[ContentPart]:
        raise NotImplementedError


class GeminiImageClient(ImageModelClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.endpoint = (endpoint or settings.gemini_endpoint).rstrip("/")
        self.timeout = timeout or settings.gemini_timeout_seconds
        self.session = session or requests.Session()

    def build_payload(self, parts: List[ContentPart], *, model_tier: str, aspect_ratio: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [_to_wire(p) for p in parts]}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {
                    "aspectRatio": aspect_ratio,
                    "imageSize": image_size_for_tier(model_tier),
                },
            },
        }

    def generate(self, parts: List[ContentPart], *, model_tier: str, aspect_ratio: str) -> List[ContentPart]:
        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY is not set")
        model = MODEL_BY_TIER.get(model_tier, MODEL_BY_TIER["pro"])
        url = f"{self.endpoint}/models/{model}:generateContent"
        payload = self.build_payload(parts, model_tier=model_tier, aspect_ratio=aspect_ratio)

        r = self.session.post(
            url,
            json=payload,
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
        )
        if r.status_code >= 400:
            raise GenerationError(f"Image model error {r.status_code}: {r.text[:300]}")
        body = r.json()

        candidates = body.get("candidates") or []
        raw_parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        out = [p for p in (_from_wire(raw) for raw in raw_parts) if p is not None]
        logger.info(f"[gemini] model={model} returned {len(out)} part(s)")
        return out
