from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from blob_migrator.core.database import get_db
from blob_migrator.core.security import verify_api_key
from blob_migrator.dtos.job_dto import (
    FileRead,
    InProgressFileRead,
    ReclaimRequest,
    RetryBulkRequest,
)
from blob_migrator.repositories.file_inventory_repo import FileInventoryRepository
from blob_migrator.services.job_lifecycle_service import JobLifecycleService

router = APIRouter(tags=["files"], dependencies=[Depends(verify_api_key)])


@router.get("/files", response_model=list[FileRead])
async def list_files(
    status: str | None = None,
    q: str | None = None,
    limit: int = Query(100),
    db: Session = Depends(get_db),
):
    limit = max(1, min(1000, limit))
    return FileInventoryRepository(db).search(status=status, query=q, limit=limit)


@router.get("/files-inprogress", response_model=list[InProgressFileRead])
async def list_files_in_progress(limit: int = Query(100), db: Session = Depends(get_db)):
    limit = max(1, min(1000, limit))
    return FileInventoryRepository(db).list_in_progress(limit=limit)


@router.post("/files/{file_id}/retry")
async def retry_file(file_id: str, db: Session = Depends(get_db)):
    if not FileInventoryRepository(db).reset_to_pending(file_id):
        raise HTTPException(status_code=404, detail=f"File {file_id} not found")
    return {"ok": True}


@router.post("/retry-bulk")
async def retry_bulk(body: RetryBulkRequest, db: Session = Depends(get_db)):
    if not body.status and not body.ids:
        raise HTTPException(status_code=400, detail="Provide status or ids")
    reset = FileInventoryRepository(db).reset_bulk(status=body.status, ids=body.ids)
    return {"ok": True, "reset": reset}


@router.post("/reclaim-inprogress")
async def reclaim_in_progress(
    body: ReclaimRequest | None = None,
    db: Session = Depends(get_db),
):
    minutes = max(1.0, (body or ReclaimRequest()).minutes)
    reclaimed = JobLifecycleService(db).reap_stale_claims(minutes)
    return {"ok": True, "reclaimed": reclaimed}


@router.post("/reclaim-dirs")
async def reclaim_dirs(
    body: ReclaimRequest | None = None,
    db: Session = Depends(get_db),
):
    minutes = max(1.0, (body or ReclaimRequest()).minutes)
    reclaimed = JobLifecycleService(db).reap_stale_directories(minutes)
    return {"ok": True, "reclaimed": reclaimed}
