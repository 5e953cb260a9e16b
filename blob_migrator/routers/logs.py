from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from blob_migrator.core.database import get_db
from blob_migrator.core.security import verify_api_key
from blob_migrator.dtos.job_dto import MigrationLogRead
from blob_migrator.repositories.migration_log_repo import MigrationLogRepository

router = APIRouter(tags=["logs"], dependencies=[Depends(verify_api_key)])


@router.get("/logs", response_model=list[MigrationLogRead])
async def recent_logs(
    job_id: str = Query(..., alias="jobId"),
    status: str | None = None,
    limit: int = Query(100),
    db: Session = Depends(get_db),
):
    limit = max(1, min(1000, limit))
    return MigrationLogRepository(db).recent_for_job(job_id, status=status, limit=limit)
