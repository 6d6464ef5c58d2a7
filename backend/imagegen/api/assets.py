from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from .deps import AppServices, get_services


router = APIRouter(prefix="/assets", tags=["assets"])


@router.get("/files/{business_id}/generated/{name}")
def download_asset_file(business_id: str, name: str, svc: AppServices = Depends(get_services)):
    path = svc.storage.resolve(business_id, name)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Asset file not found")
    return FileResponse(str(path), filename=path.name)
