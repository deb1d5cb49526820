"""Sync management endpoints"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reposync.api.connections import raise_for_outcome
from reposync.models import Conflict, SyncLog
from reposync.models.base import SessionLocal, get_db, utcnow
from reposync.services.job_tracker import JobTracker
from reposync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncLogResponse(BaseModel):
    id: int
    connection_id: int
    entity_kind: Optional[str] = None
    external_id: Optional[str] = None
    status: str
    direction: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ConflictResponse(BaseModel):
    id: int
    connection_id: int
    entity_kind: str
    mirror_id: Optional[int] = None
    canonical_id: Optional[int] = None
    external_id: Optional[str] = None
    field_name: Optional[str] = None
    conflict_type: str
    description: str
    external_value: Optional[str] = None
    canonical_value: Optional[str] = None
    resolved: bool
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class JobResponse(BaseModel):
    id: int
    organization_id: str
    connection_id: Optional[int] = None
    kind: str
    status: str
    total_items: int
    processed_items: int
    successful_items: int
    failed_items: int
    errors: List[Dict[str, Any]]
    errors_truncated: int
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IssueImport(BaseModel):
    tag_ids: Optional[List[int]] = None
    status: Optional[str] = None


def _run_full_sync_job(job_id: int):
    """Background task: run a started full sync in its own session"""
    db = SessionLocal()
    try:
        SyncService(db).run_full_sync(job_id)
    except Exception as e:
        logger.error(f"Full sync job {job_id} crashed: {e}")
    finally:
        db.close()


@router.post("/connections/{connection_id}/trigger")
def trigger_sync(connection_id: int, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """Start a full sync; poll /api/sync/jobs/{job_id} for progress"""
    try:
        result = SyncService(db).start_full_sync(connection_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    raise_for_outcome(result)
    background_tasks.add_task(_run_full_sync_job, result["job_id"])
    return result


@router.get("/connections/{connection_id}/status")
def get_sync_status(connection_id: int, kind: str = "release", db: Session = Depends(get_db)):
    """GitHub-only, canonical-only and linked entities"""
    if kind not in ("release", "issue"):
        raise HTTPException(status_code=400, detail="kind must be 'release' or 'issue'")
    try:
        return SyncService(db).get_sync_status(connection_id, kind)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/connections/{connection_id}/latest-job", response_model=Optional[JobResponse])
def get_latest_job(connection_id: int, db: Session = Depends(get_db)):
    return SyncService(db).get_latest_job(connection_id)


@router.post("/releases/{mirror_id}/import")
def import_release(mirror_id: int, auto_publish: bool = Body(False, embed=True), db: Session = Depends(get_db)):
    """Create a canonical release from a mirrored GitHub release"""
    try:
        return raise_for_outcome(SyncService(db).import_external_release(mirror_id, auto_publish))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/issues/{mirror_id}/import")
def import_issue(mirror_id: int, payload: Optional[IssueImport] = None, db: Session = Depends(get_db)):
    """Create a feedback item from a mirrored GitHub issue"""
    payload = payload or IssueImport()
    try:
        return raise_for_outcome(
            SyncService(db).import_external_issue(mirror_id, tag_ids=payload.tag_ids, status=payload.status)
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/canonical-releases/{release_id}/push")
def push_release(release_id: int, db: Session = Depends(get_db)):
    """Create or update the GitHub release for a canonical release"""
    try:
        return raise_for_outcome(SyncService(db).push_canonical_release(release_id))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: int, db: Session = Depends(get_db)):
    job = JobTracker(db).get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/jobs/{job_id}/cancel")
def cancel_job(job_id: int, db: Session = Depends(get_db)):
    """Soft-cancel: the job stops dispatching at the next window"""
    return raise_for_outcome(JobTracker(db).cancel(job_id))


@router.get("/logs", response_model=List[SyncLogResponse])
def list_sync_logs(
    limit: int = 100,
    connection_id: int = None,
    db: Session = Depends(get_db)
):
    """List sync logs"""
    query = db.query(SyncLog).order_by(SyncLog.created_at.desc())
    if connection_id:
        query = query.filter(SyncLog.connection_id == connection_id)
    logs = query.limit(limit).all()
    return logs


@router.get("/conflicts", response_model=List[ConflictResponse])
def list_conflicts(
    resolved: bool = None,
    connection_id: int = None,
    db: Session = Depends(get_db)
):
    """List conflicts"""
    query = db.query(Conflict).order_by(Conflict.created_at.desc())
    if resolved is not None:
        query = query.filter(Conflict.resolved == resolved)
    if connection_id:
        query = query.filter(Conflict.connection_id == connection_id)
    conflicts = query.all()
    return conflicts


@router.post("/conflicts/{conflict_id}/resolve", response_model=ConflictResponse)
def resolve_conflict(
    conflict_id: int,
    request: Request,
    resolution_notes: Optional[str] = Body(None, embed=True),
    db: Session = Depends(get_db)
):
    """Mark a conflict as resolved"""
    if resolution_notes is None:
        resolution_notes = request.query_params.get("resolution_notes")

    conflict = db.query(Conflict).filter(Conflict.id == conflict_id).first()
    if not conflict:
        raise HTTPException(status_code=404, detail="Conflict not found")

    conflict.resolved = True
    conflict.resolved_at = utcnow()
    conflict.resolution_notes = resolution_notes
    db.commit()
    db.refresh(conflict)
    return conflict
