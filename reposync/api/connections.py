"""GitHub connection management endpoints"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reposync.models import Connection
from reposync.models.base import get_db
from reposync.models.connection import SyncDirection
from reposync.scheduler import scheduler
from reposync.services.connection_store import ConnectionStore
from reposync.services.errors import SyncError, ValidationSyncError
from reposync.services.sync_service import SyncService

router = APIRouter(prefix="/api/connections", tags=["connections"])

_STATUS_CODES = {"not_found": 404, "rejected": 409, "invalid": 400, "failed": 502}


def raise_for_outcome(result: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a service outcome dict into an HTTP error where needed."""
    code = _STATUS_CODES.get(result.get("status"))
    if code is not None:
        raise HTTPException(status_code=code, detail=result.get("message") or result.get("status"))
    return result


def raise_for_sync_error(e: SyncError):
    if isinstance(e, ValidationSyncError):
        raise HTTPException(status_code=400, detail=str(e))
    raise HTTPException(status_code=502, detail=str(e))


class ConnectionCreate(BaseModel):
    organization_id: str
    installation_id: str
    account_login: Optional[str] = None
    account_type: Optional[str] = None
    repository_id: Optional[str] = None
    repository_full_name: Optional[str] = None
    default_branch: Optional[str] = None


class RepositoryChange(BaseModel):
    repository_id: str
    full_name: Optional[str] = None
    default_branch: Optional[str] = None


class DirectionChange(BaseModel):
    direction: SyncDirection


class ConnectionSettingsUpdate(BaseModel):
    target_branch: Optional[str] = None
    auto_sync_releases: Optional[bool] = None
    auto_publish_imported: Optional[bool] = None
    push_to_github_on_publish: Optional[bool] = None
    issues_sync_enabled: Optional[bool] = None
    auto_sync_issues: Optional[bool] = None
    webhook_secret: Optional[str] = None


class ConnectionResponse(BaseModel):
    id: int
    organization_id: str
    installation_id: str
    account_login: Optional[str] = None
    account_type: Optional[str] = None
    repository_id: Optional[str] = None
    repository_full_name: Optional[str] = None
    default_branch: Optional[str] = None
    target_branch: Optional[str] = None
    status: str
    status_message: Optional[str] = None
    sync_direction: str
    auto_sync_releases: bool
    auto_publish_imported: bool
    push_to_github_on_publish: bool
    issues_sync_enabled: bool
    auto_sync_issues: bool
    last_sync_at: Optional[datetime] = None
    last_sync_status: str
    last_sync_error: Optional[str] = None
    disconnected_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def _get_connection_or_404(db: Session, connection_id: int) -> Connection:
    connection = ConnectionStore(db).get(connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.get("/", response_model=List[ConnectionResponse])
def list_connections(db: Session = Depends(get_db)):
    """List all connections"""
    return db.query(Connection).order_by(Connection.id).all()


@router.post("/", response_model=ConnectionResponse)
def create_connection(payload: ConnectionCreate, db: Session = Depends(get_db)):
    """Connect (or reconnect) an organization to a GitHub App installation"""
    repository = None
    if payload.repository_id:
        repository = {
            "id": payload.repository_id,
            "full_name": payload.repository_full_name,
            "default_branch": payload.default_branch,
        }
    result = ConnectionStore(db).connect(
        payload.organization_id,
        payload.installation_id,
        account_login=payload.account_login,
        account_type=payload.account_type,
        repository=repository,
    )
    connection = _get_connection_or_404(db, result["connection_id"])
    scheduler.refresh_connection(connection)
    return connection


@router.get("/{connection_id}", response_model=ConnectionResponse)
def get_connection(connection_id: int, db: Session = Depends(get_db)):
    """Get a specific connection"""
    return _get_connection_or_404(db, connection_id)


@router.put("/{connection_id}/repository", response_model=ConnectionResponse)
def change_repository(connection_id: int, payload: RepositoryChange, db: Session = Depends(get_db)):
    """Point the connection at another repository"""
    raise_for_outcome(
        ConnectionStore(db).change_repository(
            connection_id, payload.repository_id, payload.full_name, payload.default_branch
        )
    )
    connection = _get_connection_or_404(db, connection_id)
    scheduler.refresh_connection(connection)
    return connection


@router.put("/{connection_id}/direction", response_model=ConnectionResponse)
def update_direction(connection_id: int, payload: DirectionChange, db: Session = Depends(get_db)):
    """Change the sync direction"""
    raise_for_outcome(ConnectionStore(db).update_direction(connection_id, payload.direction))
    return _get_connection_or_404(db, connection_id)


@router.patch("/{connection_id}/settings", response_model=ConnectionResponse)
def update_settings(connection_id: int, payload: ConnectionSettingsUpdate, db: Session = Depends(get_db)):
    """Update auto-sync toggles and branch settings"""
    raise_for_outcome(ConnectionStore(db).update_settings(connection_id, **payload.model_dump(exclude_unset=True)))
    connection = _get_connection_or_404(db, connection_id)
    scheduler.refresh_connection(connection)
    return connection


@router.delete("/{connection_id}")
def disconnect(connection_id: int, db: Session = Depends(get_db)):
    """Disconnect (mirrors are kept but unlinked)"""
    raise_for_outcome(ConnectionStore(db).disconnect(connection_id))
    scheduler.unschedule_connection(connection_id)
    return {"message": "Connection disconnected successfully"}


@router.get("/{connection_id}/repositories")
def list_repositories(connection_id: int, db: Session = Depends(get_db)):
    """Repositories the GitHub App installation can access"""
    try:
        return SyncService(db).list_repositories(connection_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncError as e:
        raise_for_sync_error(e)


@router.get("/{connection_id}/branches")
def list_branches(connection_id: int, db: Session = Depends(get_db)):
    try:
        return SyncService(db).list_branches(connection_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncError as e:
        raise_for_sync_error(e)


@router.get("/{connection_id}/tags")
def list_tags(connection_id: int, db: Session = Depends(get_db)):
    try:
        return SyncService(db).list_tags(connection_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncError as e:
        raise_for_sync_error(e)


@router.get("/{connection_id}/commits")
def list_commits(
    connection_id: int,
    base: Optional[str] = None,
    head: Optional[str] = None,
    branch: Optional[str] = None,
    limit: int = 30,
    db: Session = Depends(get_db),
):
    """Commits between two refs (base + head), or recent commits on a branch"""
    service = SyncService(db)
    try:
        if base and head:
            return service.compare_commits(connection_id, base, head)
        return service.list_recent_commits(connection_id, branch, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncError as e:
        raise_for_sync_error(e)
