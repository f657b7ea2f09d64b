from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_app_roles
from ..services.audit import get_audit_logs, verify_entry
from ..services.permissions import AppRole


router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("")
def list_audit_entries(
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _=Depends(require_app_roles(AppRole.admin.value)),
):
    return [
        {
            "id": str(e.id),
            "entity": e.entity,
            "entity_id": e.entity_id,
            "action": e.action,
            "user_id": str(e.user_id) if e.user_id else None,
            "details": e.details,
            "created_at": e.created_at.isoformat() if e.created_at else None,
            "verified": verify_entry(e),
        }
        for e in get_audit_logs(db, entity, entity_id, limit, offset)
    ]
