from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from blob_migrator.core.database import get_db
from blob_migrator.core.security import verify_api_key
from blob_migrator.dtos.job_dto import JobRead, JobStatusUpdate, ProgressRead, ReapStaleJobsRequest
from blob_migrator.services.job_lifecycle_service import JobLifecycleService

router = APIRouter(tags=["jobs"], dependencies=[Depends(verify_api_key)])


@router.get("/jobs", response_model=list[JobRead])
async def list_jobs(
    kind: str | None = None,
    status: str | None = None,
    limit: int = Query(50),
    db: Session = Depends(get_db),
):
    limit = max(1, min(200, limit))
    return JobLifecycleService(db).list_jobs(kind=kind, status=status, limit=limit)


@router.post("/jobs/reap-stale")
async def reap_stale_jobs(
    body: ReapStaleJobsRequest | None = None,
    db: Session = Depends(get_db),
):
    body = body or ReapStaleJobsRequest()
    reaped = JobLifecycleService(db).reap_stale_jobs(body.kind, body.minutes)
    return {"reaped": reaped}


@router.get("/jobs/{job_id}", response_model=JobRead)
async def get_job(job_id: str, db: Session = Depends(get_db)):
    return JobLifecycleService(db).get_job(job_id)


@router.post("/jobs/{job_id}/status")
async def set_job_status(
    job_id: str,
    body: JobStatusUpdate,
    db: Session = Depends(get_db),
):
    job = JobLifecycleService(db).set_status(job_id, body.status)
    return {"ok": True, "status": job.status}


@router.get("/progress/{job_id}", response_model=ProgressRead)
async def get_progress(job_id: str, db: Session = Depends(get_db)):
    return JobLifecycleService(db).get_progress(job_id)
