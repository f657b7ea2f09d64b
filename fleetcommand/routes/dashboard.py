from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..models.models import Profile, Region
from ..schemas.fleet import InspectionResult
from ..services.commissioning import TERMINAL_STATUSES, VehicleStatus, is_sla_breached
from ..services.equipment import services_due
from ..services.tenancy import tenant_models


router = APIRouter(prefix="/dashboard", tags=["dashboard"])

DUE_WINDOW_DAYS = 30


@router.get("")
def get_dashboard(db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    """Fleet readiness and compliance KPIs for the caller's tenant"""
    models = tenant_models(user.tenant_type)
    Vehicle, Task, Inspection = models.vehicle, models.task, models.inspection

    by_status = {s.value: 0 for s in VehicleStatus}
    for status, count in db.query(Vehicle.status, func.count(Vehicle.id)).group_by(Vehicle.status).all():
        by_status[status] = count
    active = sum(c for s, c in by_status.items() if s != VehicleStatus.decommissioned.value)
    ready = by_status[VehicleStatus.ready.value]

    by_region = {}
    rows = (
        db.query(Region.code, func.count(Vehicle.id))
        .select_from(Vehicle)
        .outerjoin(Region, Region.id == Vehicle.region_id)
        .group_by(Region.code)
        .all()
    )
    for code, count in rows:
        by_region[code or "Unassigned"] = count

    now = datetime.now(timezone.utc)
    open_tasks = db.query(Task).filter(Task.status.notin_(list(TERMINAL_STATUSES))).all()
    breaches = sum(1 for t in open_tasks if is_sla_breached(t, now))

    horizon = date.today() + timedelta(days=DUE_WINDOW_DAYS)
    inspections_due = (
        db.query(func.count(Inspection.id))
        .filter(Inspection.result == InspectionResult.pending.value)
        .filter(Inspection.scheduled_date <= horizon)
        .scalar()
    )

    return {
        "total_vehicles": sum(by_status.values()),
        "readiness_rate": round(ready / active * 100, 1) if active else 0.0,
        "vehicles_by_status": by_status,
        "vehicles_by_region": by_region,
        "open_tasks": len(open_tasks),
        "sla_breaches": breaches,
        "inspections_due": inspections_due or 0,
        "equipment_service_due": len(services_due(db, models.equipment, DUE_WINDOW_DAYS)),
    }
