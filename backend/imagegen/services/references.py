from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

import requests

from ..core.config import settings
from ..db.models import BusinessRecord
from ..schemas.jobs import StylePreset, SubjectContext
from .gemini import ContentPart

logger = logging.getLogger(__name__)

# (bytes, mime type) or None when the image could not be fetched
ImageFetcher = Callable[[str], Optional[Tuple[bytes, str]]]


def resolve_url(url: str, base_url: Optional[str] = None) -> str:
    """Turn app-relative artifact paths into absolute URLs."""
    if url.startswith("/artifacts/"):
        base = (base_url or settings.public_base_url).rstrip("/")
        return f"{base}{url}"
    return url


def fetch_image(url: str, *, timeout: Optional[int] = None, session: Optional[requests.Session] = None) -> Optional[Tuple[bytes, str]]:
    """Download a reference image.

    Any failure is logged and reported as ``None``: a missing reference
    must never abort a generation.
    """
    resolved = resolve_url(url)
    getter = session.get if session is not None else requests.get
    try:
        r = getter(resolved, timeout=timeout or settings.reference_fetch_timeout_seconds)
        r.raise_for_status()
        mime = (r.headers.get("content-type") or "image/png").split(";")[0].strip() or "image/png"
        return r.content, mime
    except requests.RequestException as e:
        logger.warning(f"[generate] failed to fetch reference image {resolved}: {e}")
        return None


def collect_reference_parts(
    business: BusinessRecord,
    subject: Optional[SubjectContext],
    style: Optional[StylePreset],
    fetcher: ImageFetcher = fetch_image,
) -> List[ContentPart]:
    """Fetch subject, logo and style references in order.

    Fetches run one at a time. Each image that arrives is followed by a
    text label telling the model what it is looking at; images that fail
    to load are skipped along with their label.
    """
    parts: List[ContentPart] = []

    def add(url: str, label: str) -> bool:
        fetched = fetcher(url)
        if fetched is None:
            return False
        data, mime = fetched
        parts.append(ContentPart.of_image(data, mime))
        parts.append(ContentPart.of_text(label))
        return True

    if subject is not None and subject.image_url:
        add(subject.image_url, " [REFERENCE IMAGE 1: MAIN PRODUCT] ")

    if business.logo_url:
        add(business.logo_url, " [REFERENCE IMAGE: BUSINESS LOGO - PRESERVE ALL TEXT/LETTERING EXACTLY] ")

    if style is not None:
        active = style.active_reference_urls()
        if active:
            count = 0
            for url in active:
                if add(url, f" [REFERENCE IMAGE {count + 1}: STYLE] "):
                    count += 1
        elif style.image_url:
            add(style.image_url, " [REFERENCE IMAGE: STYLE] ")

    return parts
