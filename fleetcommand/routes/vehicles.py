from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_capability
from ..models.models import Profile, Region, EquipmentCatalog
from ..schemas.fleet import (
    VehicleCreate,
    VehicleUpdate,
    VehicleResponse,
    TaskResponse,
    CommissioningResponse,
    InspectionCreate,
    InspectionResponse,
)
from ..schemas.equipment import VehicleEquipmentCreate, VehicleEquipmentResponse
from ..services.audit import record_audit, compute_diff
from ..services.commissioning import (
    VehicleType,
    VehicleStatus,
    is_sla_breached,
    start_commissioning,
    summarize_progress,
)
from ..services.equipment import next_service_date
from ..services.tenancy import tenant_models


router = APIRouter(prefix="/vehicles", tags=["vehicles"])


def plain_values(data: dict) -> dict:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


def task_out(task, now: Optional[datetime] = None) -> TaskResponse:
    out = TaskResponse.model_validate(task)
    out.sla_breached = is_sla_breached(task, now)
    return out


def get_vehicle_or_404(db: Session, user: Profile, code: str):
    Vehicle = tenant_models(user.tenant_type).vehicle
    vehicle = db.query(Vehicle).filter(Vehicle.vehicle_id == code).first()
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


def _check_region(db: Session, region_id) -> None:
    if region_id is not None and not db.get(Region, region_id):
        raise HTTPException(status_code=400, detail="Unknown region")


def _snapshot(vehicle) -> dict:
    return {c: getattr(vehicle, c) for c in VehicleUpdate.model_fields}


# ---------- VEHICLES ----------

@router.get("", response_model=List[VehicleResponse])
def list_vehicles(
    type: Optional[VehicleType] = None,
    status: Optional[VehicleStatus] = None,
    region: Optional[str] = Query(None, description="Region code"),
    search: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    Vehicle = tenant_models(user.tenant_type).vehicle
    q = db.query(Vehicle)
    if type:
        q = q.filter(Vehicle.type == type.value)
    if status:
        q = q.filter(Vehicle.status == status.value)
    if region:
        q = q.join(Region, Region.id == Vehicle.region_id).filter(Region.code == region)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(
            Vehicle.vehicle_id.ilike(term),
            Vehicle.vin.ilike(term),
            Vehicle.plate.ilike(term),
            Vehicle.make.ilike(term),
            Vehicle.model.ilike(term),
        ))
    return q.order_by(Vehicle.vehicle_id.asc()).offset(offset).limit(limit).all()


@router.get("/{code}", response_model=VehicleResponse)
def get_vehicle(code: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    return get_vehicle_or_404(db, user, code)


@router.post("", response_model=VehicleResponse, status_code=201)
def create_vehicle(
    payload: VehicleCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    Vehicle = tenant_models(user.tenant_type).vehicle
    if db.query(Vehicle).filter(Vehicle.vehicle_id == payload.vehicle_id).first():
        raise HTTPException(status_code=409, detail="Vehicle ID already exists")
    _check_region(db, payload.region_id)

    now = datetime.now(timezone.utc)
    vehicle = Vehicle(**plain_values(payload.dict()), created_by=user.id, created_at=now, status_date=now)
    db.add(vehicle)
    db.flush()
    record_audit(db, "vehicle", vehicle.id, "CREATE", user.id, {"vehicle_id": vehicle.vehicle_id, "tenant": user.tenant_type})
    db.commit()
    db.refresh(vehicle)
    return vehicle


@router.patch("/{code}", response_model=VehicleResponse)
def update_vehicle(
    code: str,
    payload: VehicleUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    vehicle = get_vehicle_or_404(db, user, code)
    update_data = plain_values(payload.dict(exclude_unset=True))
    if "region_id" in update_data:
        _check_region(db, update_data["region_id"])
    for field in ("vin", "plate", "make", "model", "year", "type", "status"):
        if field in update_data and update_data[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be empty")

    before = _snapshot(vehicle)
    now = datetime.now(timezone.utc)
    if "status" in update_data and update_data["status"] != vehicle.status:
        vehicle.status_date = now
    for field, value in update_data.items():
        setattr(vehicle, field, value)
    vehicle.updated_at = now
    changes = compute_diff(before, _snapshot(vehicle))
    if changes:
        record_audit(db, "vehicle", vehicle.id, "UPDATE", user.id, changes)
    db.commit()
    db.refresh(vehicle)
    return vehicle


@router.post("/{code}/commission", response_model=CommissioningResponse)
def commission_vehicle(
    code: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    models = tenant_models(user.tenant_type)
    vehicle = get_vehicle_or_404(db, user, code)
    if vehicle.status == VehicleStatus.decommissioned.value:
        raise HTTPException(status_code=409, detail="Decommissioned vehicles cannot be commissioned")
    created = start_commissioning(db, vehicle, models.task)
    record_audit(db, "vehicle", vehicle.id, "COMMISSION", user.id, {"tasks_created": len(created)})
    db.commit()
    db.refresh(vehicle)

    tasks = _vehicle_tasks(db, models.task, vehicle)
    return CommissioningResponse(
        vehicle=VehicleResponse.model_validate(vehicle),
        tasks_created=len(created),
        tasks=[task_out(t) for t in tasks],
        progress=summarize_progress(tasks),
    )


# ---------- TASKS ----------

def _vehicle_tasks(db: Session, task_model, vehicle) -> list:
    return (
        db.query(task_model)
        .filter(task_model.vehicle_id == vehicle.id)
        .order_by(task_model.step_order.asc(), task_model.created_at.asc())
        .all()
    )


@router.get("/{code}/tasks", response_model=List[TaskResponse])
def list_vehicle_tasks(code: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    vehicle = get_vehicle_or_404(db, user, code)
    now = datetime.now(timezone.utc)
    return [task_out(t, now) for t in _vehicle_tasks(db, tenant_models(user.tenant_type).task, vehicle)]


@router.get("/{code}/progress")
def vehicle_progress(code: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    vehicle = get_vehicle_or_404(db, user, code)
    return summarize_progress(_vehicle_tasks(db, tenant_models(user.tenant_type).task, vehicle))


# ---------- INSPECTIONS ----------

@router.get("/{code}/inspections", response_model=List[InspectionResponse])
def list_vehicle_inspections(code: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    Inspection = tenant_models(user.tenant_type).inspection
    vehicle = get_vehicle_or_404(db, user, code)
    return (
        db.query(Inspection)
        .filter(Inspection.vehicle_id == vehicle.id)
        .order_by(Inspection.scheduled_date.desc())
        .all()
    )


@router.post("/{code}/inspections", response_model=InspectionResponse, status_code=201)
def create_inspection(
    code: str,
    payload: InspectionCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    Inspection = tenant_models(user.tenant_type).inspection
    vehicle = get_vehicle_or_404(db, user, code)
    inspection = Inspection(vehicle_id=vehicle.id, created_at=datetime.now(timezone.utc), **plain_values(payload.dict()))
    db.add(inspection)
    db.commit()
    db.refresh(inspection)
    return inspection


# ---------- EQUIPMENT ----------

@router.get("/{code}/equipment", response_model=List[VehicleEquipmentResponse])
def list_vehicle_equipment(code: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    Equipment = tenant_models(user.tenant_type).equipment
    vehicle = get_vehicle_or_404(db, user, code)
    return db.query(Equipment).filter(Equipment.vehicle_id == vehicle.id).all()


@router.post("/{code}/equipment", response_model=VehicleEquipmentResponse, status_code=201)
def install_equipment(
    code: str,
    payload: VehicleEquipmentCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    Equipment = tenant_models(user.tenant_type).equipment
    vehicle = get_vehicle_or_404(db, user, code)
    catalog = db.get(EquipmentCatalog, payload.equipment_id)
    if not catalog:
        raise HTTPException(status_code=404, detail="Equipment not found in catalog")
    item = Equipment(
        vehicle_id=vehicle.id,
        equipment_id=catalog.id,
        serial_number=payload.serial_number,
        installed_date=payload.installed_date,
        last_service_date=payload.last_service_date,
        next_service_date=next_service_date(catalog, payload.installed_date, payload.last_service_date),
        notes=payload.notes,
        created_at=datetime.now(timezone.utc),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item
