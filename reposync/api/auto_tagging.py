"""AI auto-tagging endpoints"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from reposync.api.connections import raise_for_outcome
from reposync.api.sync import JobResponse
from reposync.models.base import SessionLocal, get_db
from reposync.models.sync_job import JobKind
from reposync.services.auto_tagging import AutoTaggingService
from reposync.services.job_tracker import JobTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auto-tagging", tags=["auto-tagging"])


def _run_auto_tagging_job(job_id: int):
    """Background task: run a started tagging job in its own session"""
    db = SessionLocal()
    try:
        AutoTaggingService(db).run_bulk_auto_tagging(job_id)
    except Exception as e:
        logger.error(f"Auto-tagging job {job_id} crashed: {e}")
    finally:
        db.close()


@router.post("/organizations/{organization_id}/start")
def start_auto_tagging(organization_id: str, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """Tag every untagged feedback item of an organization"""
    result = raise_for_outcome(AutoTaggingService(db).start_bulk_auto_tagging(organization_id))
    if result["status"] == "started":
        background_tasks.add_task(_run_auto_tagging_job, result["job_id"])
    return result


@router.get("/organizations/{organization_id}/active", response_model=JobResponse)
def get_active_job(organization_id: str, db: Session = Depends(get_db)):
    job = JobTracker(db).get_active_job(JobKind.AUTO_TAGGING, organization_id=organization_id)
    if not job:
        raise HTTPException(status_code=404, detail="No auto-tagging job running")
    return job
