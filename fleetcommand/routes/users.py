import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_app_roles
from ..models.models import Profile, UserRole
from ..schemas.auth import UserListResponse, UserSummary, RoleChange
from ..services.audit import record_audit
from ..services.permissions import AppRole, TenantType


router = APIRouter(prefix="/users", tags=["users"])

require_admin = require_app_roles(AppRole.admin.value)


@router.get("", response_model=UserListResponse)
def list_users(
    search: Optional[str] = None,
    role: Optional[AppRole] = None,
    tenant: Optional[TenantType] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    profiles = db.query(Profile).order_by(Profile.created_at.desc()).all()
    # Counts cover every account regardless of the filters
    role_counts = Counter(p.role or "none" for p in profiles)
    tenant_counts = Counter(p.tenant_type for p in profiles)

    q = db.query(Profile)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Profile.email.ilike(term), Profile.full_name.ilike(term)))
    if tenant:
        q = q.filter(Profile.tenant_type == tenant.value)
    if role:
        q = q.join(UserRole, UserRole.user_id == Profile.id).filter(UserRole.role == role.value)
    users = q.order_by(Profile.created_at.desc()).all()

    return UserListResponse(
        users=[UserSummary.model_validate(u) for u in users],
        role_counts={r.value: role_counts.get(r.value, 0) for r in AppRole},
        tenant_counts={t.value: tenant_counts.get(t.value, 0) for t in TenantType},
    )


@router.patch("/{user_id}/role", response_model=UserSummary)
def change_role(
    user_id: uuid.UUID,
    payload: RoleChange,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    user = db.query(Profile).filter(Profile.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    previous = user.role
    if user.role_entry is None:
        user.role_entry = UserRole(role=payload.role.value)
    else:
        user.role_entry.role = payload.role.value
    user.updated_at = datetime.now(timezone.utc)
    record_audit(db, "user_role", user.id, "ROLE_CHANGE", admin.id, {"from": previous, "to": payload.role.value})
    db.commit()
    db.refresh(user)
    return user
