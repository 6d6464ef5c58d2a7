from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..db.models import JOB_COMPLETED, AssetRecord, JobRecord
from ..schemas.jobs import (
    AssetSummary,
    GenerateImageRequest,
    GenerateImageResponse,
    JobStatusResponse,
    PendingJob,
    PendingJobsResponse,
)
from ..services.generation import dispatch_generation
from .deps import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate-image", tags=["generate-image"])


def _asset_summary(asset: AssetRecord) -> AssetSummary:
    return AssetSummary(
        id=asset.asset_id,
        type=asset.type,
        content=asset.content,
        prompt=asset.prompt,
        created_at=asset.created_at,
        style_preset=asset.style_preset,
        aspect_ratio=asset.aspect_ratio,
    )


def _pending_job(rec: JobRecord) -> PendingJob:
    return PendingJob(
        id=rec.job_id,
        business_id=rec.business_id,
        status=rec.status,
        prompt=rec.prompt,
        aspect_ratio=rec.aspect_ratio,
        style_id=rec.style_id,
        subject_id=rec.subject_id,
        model_tier=rec.model_tier,
        created_at=rec.created_at,
    )


@router.post("", response_model=GenerateImageResponse)
def submit_generation(req: GenerateImageRequest, svc: AppServices = Depends(get_services)) -> GenerateImageResponse:
    business = svc.businesses.get_business(req.business_id)
    if business is None:
        raise HTTPException(status_code=404, detail="Business not found")

    # Always a fresh id, so a retried request can never re-run a finished job.
    job_id = str(uuid.uuid4())
    rec = svc.jobs.create_job(
        job_id,
        business.business_id,
        prompt=req.prompt,
        aspect_ratio=req.aspect_ratio,
        style_id=req.style_id,
        subject_id=req.subject_id,
        model_tier=req.model_tier,
        strategy=req.strategy,
    )
    logger.info(f"[generate] job created {job_id} for business {business.business_id}")

    dispatch_generation(job_id, req, business, run_mode=svc.run_mode, **svc.pipeline_deps())
    return GenerateImageResponse(job_id=rec.job_id, status=rec.status)


@router.get("/status/{job_id}", response_model=JobStatusResponse)
def get_status(job_id: str, svc: AppServices = Depends(get_services)) -> JobStatusResponse:
    try:
        rec = svc.jobs.get_job(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")

    asset: Optional[AssetSummary] = None
    if rec.status == JOB_COMPLETED and rec.result_asset_id:
        try:
            asset = _asset_summary(svc.assets.get_asset(rec.result_asset_id))
        except KeyError:
            logger.warning(f"[status] job {job_id} references missing asset {rec.result_asset_id}")

    return JobStatusResponse(
        id=rec.job_id,
        status=rec.status,
        error_message=rec.error_message,
        result_asset_id=rec.result_asset_id,
        asset=asset,
        created_at=rec.created_at,
        updated_at=rec.updated_at,
    )


@router.get("/pending/{business_id}", response_model=PendingJobsResponse)
def list_pending(business_id: str, svc: AppServices = Depends(get_services)) -> PendingJobsResponse:
    return PendingJobsResponse(jobs=[_pending_job(r) for r in svc.jobs.list_pending(business_id)])


@router.delete("/job/{job_id}")
def cancel_job(job_id: str, svc: AppServices = Depends(get_services)) -> dict:
    if not svc.jobs.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    logger.info(f"[generate] job {job_id} deleted on request")
    return {"ok": True}
