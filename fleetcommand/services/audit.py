"""
Audit logging service.
Append-only audit trail with an integrity hash over each entry.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def integrity_hash_for(
    entity: str,
    entity_id: str,
    action: str,
    user_id: Optional[str],
    created_at: datetime,
    details: Optional[Dict[str, Any]],
    secret: Optional[str] = None,
) -> Optional[str]:
    secret = settings.jwt_secret if secret is None else secret
    if not secret:
        return None
    canonical = {
        "entity": entity,
        "entity_id": str(entity_id),
        "action": action,
        "user_id": str(user_id) if user_id else None,
        "created_at": created_at.isoformat(),
        "details": details,
    }
    # Drop empty keys so the hash is stable across optional fields
    canonical = {k: v for k, v in canonical.items() if v is not None}
    payload = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{payload}:{secret}".encode()).hexdigest()


def record_audit(
    db: Session,
    entity: str,
    entity_id,
    action: str,
    user_id=None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an audit entry on the session.

    The caller owns the transaction; the entry is committed together with
    the change it describes.
    """
    created_at = datetime.now(timezone.utc)
    details = json.loads(json.dumps(details, default=str)) if details is not None else None
    entry = AuditLog(
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        user_id=user_id,
        details=details,
        created_at=created_at,
        integrity_hash=integrity_hash_for(entity, str(entity_id), action, user_id, created_at, details),
    )
    db.add(entry)
    return entry


def verify_entry(entry: AuditLog, secret: Optional[str] = None) -> bool:
    created_at = entry.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    expected = integrity_hash_for(
        entry.entity, entry.entity_id, entry.action, entry.user_id, created_at, entry.details, secret
    )
    return expected is not None and expected == entry.integrity_hash


def get_audit_logs(
    db: Session,
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list:
    query = db.query(AuditLog)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    return query.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Changed keys only, as {key: {"before": ..., "after": ...}}."""
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {"before": before_val, "after": after_val}
    return diff
