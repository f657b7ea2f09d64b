import uuid
from datetime import date, timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_capability
from ..models.models import Profile
from ..schemas.fleet import InspectionResult, InspectionUpdate, InspectionResponse
from ..services.tenancy import tenant_models
from .vehicles import plain_values


router = APIRouter(prefix="/inspections", tags=["inspections"])


@router.get("/due", response_model=List[InspectionResponse])
def inspections_due(
    within_days: int = Query(30, ge=0, le=365),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Pending inspections scheduled on or before today + within_days, overdue first."""
    Inspection = tenant_models(user.tenant_type).inspection
    horizon = date.today() + timedelta(days=within_days)
    return (
        db.query(Inspection)
        .filter(Inspection.result == InspectionResult.pending.value)
        .filter(Inspection.scheduled_date <= horizon)
        .order_by(Inspection.scheduled_date.asc())
        .all()
    )


@router.patch("/{inspection_id}", response_model=InspectionResponse)
def update_inspection(
    inspection_id: uuid.UUID,
    payload: InspectionUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    Inspection = tenant_models(user.tenant_type).inspection
    inspection = db.query(Inspection).filter(Inspection.id == inspection_id).first()
    if not inspection:
        raise HTTPException(status_code=404, detail="Inspection not found")
    for field, value in plain_values(payload.dict(exclude_unset=True)).items():
        if field == "scheduled_date" and value is None:
            raise HTTPException(status_code=400, detail="scheduled_date cannot be empty")
        setattr(inspection, field, value)
    db.commit()
    db.refresh(inspection)
    return inspection
