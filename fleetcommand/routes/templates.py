from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_app_roles, require_tenant
from ..models.models import Profile, Region, TaskTemplate
from ..schemas.templates import TaskTemplateCreate, TaskTemplateResponse
from ..services.commissioning import VehicleType
from ..services.permissions import APPROVER_ROLES, TenantType
from .vehicles import plain_values


router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=List[TaskTemplateResponse])
def list_templates(
    vehicle_type: Optional[VehicleType] = None,
    template_id: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(get_current_user),
):
    q = db.query(TaskTemplate)
    if vehicle_type:
        q = q.filter(TaskTemplate.vehicle_type == vehicle_type.value)
    if template_id:
        q = q.filter(TaskTemplate.template_id == template_id)
    return q.order_by(TaskTemplate.template_id.asc(), TaskTemplate.step_order.asc()).all()


@router.post("", response_model=TaskTemplateResponse, status_code=201)
def create_template(
    payload: TaskTemplateCreate,
    db: Session = Depends(get_db),
    _tenant=Depends(require_tenant(TenantType.internal.value)),
    _role=Depends(require_app_roles(*sorted(APPROVER_ROLES))),
):
    if payload.region_id is not None and not db.get(Region, payload.region_id):
        raise HTTPException(status_code=400, detail="Unknown region")
    template = TaskTemplate(**plain_values(payload.dict()))
    db.add(template)
    db.commit()
    db.refresh(template)
    return template
