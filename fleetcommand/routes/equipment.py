import uuid
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_app_roles, require_capability, require_tenant
from ..models.models import Profile, Vendor, EquipmentCatalog
from ..schemas.equipment import (
    VendorCreate,
    VendorResponse,
    EquipmentCatalogCreate,
    EquipmentCatalogResponse,
    ServiceRecord,
    VehicleEquipmentResponse,
)
from ..services.equipment import record_service, services_due
from ..services.permissions import APPROVER_ROLES, TenantType
from ..services.tenancy import tenant_models


router = APIRouter(prefix="/equipment", tags=["equipment"])

manage_reference_data = [
    Depends(require_tenant(TenantType.internal.value)),
    Depends(require_app_roles(*sorted(APPROVER_ROLES))),
]


# ---------- CATALOG ----------

@router.get("/catalog", response_model=List[EquipmentCatalogResponse])
def list_catalog(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return db.query(EquipmentCatalog).order_by(EquipmentCatalog.name.asc()).all()


@router.post("/catalog", response_model=EquipmentCatalogResponse, status_code=201, dependencies=manage_reference_data)
def create_catalog_item(payload: EquipmentCatalogCreate, db: Session = Depends(get_db)):
    if db.query(EquipmentCatalog).filter(EquipmentCatalog.equipment_id == payload.equipment_id).first():
        raise HTTPException(status_code=409, detail="Equipment ID already exists")
    if payload.vendor_id is not None and not db.get(Vendor, payload.vendor_id):
        raise HTTPException(status_code=400, detail="Unknown vendor")
    item = EquipmentCatalog(**payload.dict(), created_at=datetime.now(timezone.utc))
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


# ---------- SERVICE SCHEDULE ----------

@router.get("/due", response_model=List[VehicleEquipmentResponse])
def equipment_due(
    within_days: int = Query(30, ge=0, le=365),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return services_due(db, tenant_models(user.tenant_type).equipment, within_days)


@router.post("/installed/{item_id}/service", response_model=VehicleEquipmentResponse)
def service_equipment(
    item_id: uuid.UUID,
    payload: ServiceRecord,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    Equipment = tenant_models(user.tenant_type).equipment
    item = db.query(Equipment).filter(Equipment.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Installed equipment not found")
    record_service(db, item, payload.service_date, payload.notes)
    item.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(item)
    return item


# ---------- VENDORS ----------

@router.get("/vendors", response_model=List[VendorResponse])
def list_vendors(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return db.query(Vendor).order_by(Vendor.name.asc()).all()


@router.post("/vendors", response_model=VendorResponse, status_code=201, dependencies=manage_reference_data)
def create_vendor(payload: VendorCreate, db: Session = Depends(get_db)):
    if db.query(Vendor).filter(Vendor.vendor_id == payload.vendor_id).first():
        raise HTTPException(status_code=409, detail="Vendor ID already exists")
    vendor = Vendor(**payload.dict(), created_at=datetime.now(timezone.utc))
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    return vendor
