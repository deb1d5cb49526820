"""GitHub label -> internal tag mapping"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reposync.models import Connection, LabelMapping

logger = logging.getLogger(__name__)

FEEDBACK_STATUSES = ("open", "under_review", "planned", "in_progress", "completed", "closed")


@dataclass
class LabelResolution:
    tag_ids: List[int] = field(default_factory=list)
    default_status: Optional[str] = None
    should_sync: bool = False


def _ordered(mappings: Iterable[Any]) -> List[Any]:
    # created_at may be None on unsaved rows; those sort last, by id.
    return sorted(
        mappings,
        key=lambda m: (m.created_at is None, m.created_at or datetime.min, m.id or 0),
    )


def resolve(
    external_labels: Sequence[str],
    mappings: Iterable[Any],
    issue_state: str = "open",
) -> LabelResolution:
    """Resolve an issue's labels against a connection's mappings.

    Matching is exact and case-sensitive. The result depends only on the label
    set and the mappings (creation order), never on label order.
    """
    labels = set(external_labels or [])
    is_open = (issue_state or "open") == "open"
    result = LabelResolution()

    for mapping in _ordered(mappings):
        if mapping.label_name not in labels:
            continue
        if mapping.target_tag_id is not None and mapping.target_tag_id not in result.tag_ids:
            result.tag_ids.append(mapping.target_tag_id)
        if result.default_status is None and mapping.default_status:
            result.default_status = mapping.default_status
        if mapping.auto_sync and (is_open or mapping.sync_closed_issues):
            result.should_sync = True

    return result


class LabelMappingService:
    """List/upsert/delete label mappings for a connection"""

    def __init__(self, db: Session):
        self.db = db

    def list_mappings(self, connection_id: int) -> List[LabelMapping]:
        return (
            self.db.query(LabelMapping)
            .filter(LabelMapping.connection_id == connection_id)
            .order_by(LabelMapping.created_at, LabelMapping.id)
            .all()
        )

    def resolve_for_connection(self, connection_id: int, labels: Sequence[str], issue_state: str = "open") -> LabelResolution:
        return resolve(labels, self.list_mappings(connection_id), issue_state)

    def update_label_mapping(
        self,
        connection_id: int,
        label_name: str,
        *,
        label_color: Optional[str] = None,
        target_tag_id: Optional[int] = None,
        auto_sync: bool = False,
        sync_closed_issues: bool = False,
        default_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create or update the mapping for (connection, label_name)."""
        if not self.db.query(Connection).filter(Connection.id == connection_id).first():
            return {"status": "not_found", "message": f"Connection {connection_id} not found"}
        if not label_name:
            return {"status": "invalid", "message": "label_name is required"}
        if default_status is not None and default_status not in FEEDBACK_STATUSES:
            return {"status": "invalid", "message": f"Unknown feedback status: {default_status}"}

        values = {
            "label_color": label_color,
            "target_tag_id": target_tag_id,
            "auto_sync": auto_sync,
            "sync_closed_issues": sync_closed_issues,
            "default_status": default_status,
        }

        for attempt in (1, 2):
            mapping = (
                self.db.query(LabelMapping)
                .filter(LabelMapping.connection_id == connection_id, LabelMapping.label_name == label_name)
                .first()
            )
            created = mapping is None
            if created:
                mapping = LabelMapping(connection_id=connection_id, label_name=label_name)
                self.db.add(mapping)
            for key, value in values.items():
                setattr(mapping, key, value)
            try:
                self.db.commit()
            except IntegrityError:
                # Another writer created the same label mapping first; update theirs.
                self.db.rollback()
                if attempt == 2:
                    raise
                continue
            self.db.refresh(mapping)
            logger.info(f"{'Created' if created else 'Updated'} label mapping '{label_name}' on connection {connection_id}")
            return {"status": "success", "mapping_id": mapping.id, "created": created}

    def delete_mapping(self, connection_id: int, mapping_id: int) -> Dict[str, Any]:
        mapping = (
            self.db.query(LabelMapping)
            .filter(LabelMapping.id == mapping_id, LabelMapping.connection_id == connection_id)
            .first()
        )
        if not mapping:
            return {"status": "not_found", "message": f"Label mapping {mapping_id} not found"}
        self.db.delete(mapping)
        self.db.commit()
        return {"status": "success"}
