from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from ..core.config import settings
from ..db.models import JOB_COMPLETED, JOB_FAILED, BusinessRecord
from ..db.sqlite import SQLiteAssetStore, SQLiteJobStore
from ..schemas.jobs import GenerateImageRequest
from .gemini import ContentPart, ImageModelClient, first_image_part
from .prompts import create_image_prompt
from .references import ImageFetcher, collect_reference_parts, fetch_image
from .storage import LocalAssetStorage

logger = logging.getLogger(__name__)


class JobStateError(RuntimeError):
    """Raised when the orchestrator is asked to run a job that already finished."""


@dataclass(frozen=True)
class GenerationOutcome:
    job_id: str
    status: str
    asset_id: Optional[str] = None
    error_message: Optional[str] = None


def new_asset_id() -> str:
    return f"asset_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def is_debug_prompt(prompt: str) -> bool:
    return prompt.lower().startswith(settings.debug_prompt_prefix)


def run_generation(
    job_id: str,
    req: GenerateImageRequest,
    business: BusinessRecord,
    *,
    jobs: SQLiteJobStore,
    assets: SQLiteAssetStore,
    storage: LocalAssetStorage,
    image_client: ImageModelClient,
    fetcher: ImageFetcher = fetch_image,
) -> Optional[GenerationOutcome]:
    """Run the generation pipeline for one job and record how it ended.

    Every failure inside the pipeline becomes a single ``failed`` ledger
    update carrying the error text; nothing is re-raised. Returns ``None``
    when the job was deleted (cancelled) before it could finish.
    """
    rec = jobs.find_job(job_id)
    if rec is None:
        logger.info(f"[generate] job {job_id} no longer exists, skipping")
        return None
    if rec.is_terminal:
        raise JobStateError(f"Job {job_id} is already {rec.status}")

    logger.info(f"[generate] started job={job_id} business={business.business_id}")
    try:
        final_prompt = create_image_prompt(
            business,
            req.prompt,
            subject=req.subject_context,
            style=req.style_preset,
            strategy=req.strategy,
        )
        logger.info(f"[generate] job={job_id} prompt built, length={len(final_prompt)}")

        if is_debug_prompt(req.prompt):
            logger.info(f"[generate] job={job_id} debug mode, full prompt:\n{final_prompt}")
            content = settings.debug_placeholder_url
        else:
            content = _generate_and_upload(job_id, req, business, final_prompt, jobs, storage, image_client, fetcher)
            if content is None:
                return None

        if jobs.find_job(job_id) is None:
            logger.info(f"[generate] job {job_id} was deleted during generation, not saving an asset")
            return None

        asset_id = new_asset_id()
        assets.create_asset(
            asset_id,
            business.business_id,
            content=content,
            prompt=req.prompt,
            aspect_ratio=req.aspect_ratio,
            model_tier=req.model_tier,
            style_preset=req.style_preset.name if req.style_preset else None,
            style_id=req.style_id,
            subject_id=req.subject_id,
        )
        if jobs.complete_job(job_id, asset_id) is None:
            return None
        logger.info(f"[generate] completed job={job_id} asset={asset_id}")
        return GenerationOutcome(job_id=job_id, status=JOB_COMPLETED, asset_id=asset_id)

    except Exception as e:
        message = str(e) or type(e).__name__ or "Unknown error"
        logger.error(f"[generate] failed job={job_id}: {type(e).__name__}: {message}", exc_info=True)
        if jobs.fail_job(job_id, message) is None:
            return None
        return GenerationOutcome(job_id=job_id, status=JOB_FAILED, error_message=message)


def _generate_and_upload(
    job_id: str,
    req: GenerateImageRequest,
    business: BusinessRecord,
    final_prompt: str,
    jobs: SQLiteJobStore,
    storage: LocalAssetStorage,
    image_client: ImageModelClient,
    fetcher: ImageFetcher,
) -> Optional[str]:
    parts: List[ContentPart] = [ContentPart.of_text(final_prompt)]
    parts.extend(collect_reference_parts(business, req.subject_context, req.style_preset, fetcher))
    logger.info(f"[generate] job={job_id} content parts ready, count={len(parts)}")

    # Deletion is the only server-side cancel; honour it before the expensive call.
    if jobs.find_job(job_id) is None:
        logger.info(f"[generate] job {job_id} was deleted, not calling the model")
        return None

    started = time.monotonic()
    response = image_client.generate(parts, model_tier=req.model_tier, aspect_ratio=req.aspect_ratio)
    logger.info(f"[generate] job={job_id} model call took {time.monotonic() - started:.2f}s")

    image = first_image_part(response)
    assert image.data is not None and image.mime_type is not None
    if jobs.find_job(job_id) is None:
        logger.info(f"[generate] job {job_id} was deleted during the model call, discarding the image")
        return None
    url = storage.upload(business.business_id, image.data, image.mime_type)
    logger.info(f"[generate] job={job_id} uploaded to {url}")
    return url


def start_generation_in_thread(job_id: str, req: GenerateImageRequest, business: BusinessRecord, **deps) -> threading.Thread:
    def _target() -> None:
        run_generation(job_id, req, business, **deps)

    t = threading.Thread(target=_target, name=f"generate-{job_id}", daemon=True)
    t.start()
    return t


def dispatch_generation(
    job_id: str,
    req: GenerateImageRequest,
    business: BusinessRecord,
    *,
    run_mode: Optional[str] = None,
    **deps,
) -> None:
    """Hand a freshly created job to the orchestrator.

    ``background`` returns immediately and finishes on a daemon thread;
    ``inline`` runs the whole pipeline before returning. Either way the
    client polls the same status endpoint.
    """
    if resolve_run_mode(run_mode) == "inline":
        run_generation(job_id, req, business, **deps)
    else:
        start_generation_in_thread(job_id, req, business, **deps)


def resolve_run_mode(run_mode: Optional[str] = None) -> str:
    mode = (run_mode or settings.run_mode).strip().lower()
    if mode not in ("background", "inline"):
        raise RuntimeError(f"Unknown GENERATION_RUN_MODE: {mode}")
    return mode
