"""Label mapping endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from reposync.api.connections import raise_for_outcome
from reposync.models.base import get_db
from reposync.services.label_mapper import LabelMappingService

router = APIRouter(prefix="/api/connections/{connection_id}/label-mappings", tags=["label-mappings"])


class LabelMappingUpsert(BaseModel):
    label_name: str
    label_color: Optional[str] = None
    target_tag_id: Optional[int] = None
    auto_sync: bool = False
    sync_closed_issues: bool = False
    default_status: Optional[str] = None


class LabelMappingResponse(BaseModel):
    id: int
    connection_id: int
    label_name: str
    label_color: Optional[str] = None
    target_tag_id: Optional[int] = None
    auto_sync: bool
    sync_closed_issues: bool
    default_status: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/", response_model=List[LabelMappingResponse])
def list_label_mappings(connection_id: int, db: Session = Depends(get_db)):
    """List label mappings in evaluation order"""
    return LabelMappingService(db).list_mappings(connection_id)


@router.put("/")
def upsert_label_mapping(connection_id: int, payload: LabelMappingUpsert, db: Session = Depends(get_db)):
    """Create or update the mapping for a label name"""
    data = payload.model_dump()
    label_name = data.pop("label_name")
    return raise_for_outcome(LabelMappingService(db).update_label_mapping(connection_id, label_name, **data))


@router.delete("/{mapping_id}")
def delete_label_mapping(connection_id: int, mapping_id: int, db: Session = Depends(get_db)):
    raise_for_outcome(LabelMappingService(db).delete_mapping(connection_id, mapping_id))
    return {"message": "Label mapping deleted successfully"}
