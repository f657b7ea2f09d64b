import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, declared_attr, relationship

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


# ---------- Identity ----------

class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(100))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_type: Mapped[str] = mapped_column(String(20), nullable=False, default="internal", index=True)  # internal|demo
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    role_entry = relationship("UserRole", uselist=False, back_populates="profile", cascade="all, delete-orphan")

    @property
    def role(self) -> Optional[str]:
        return self.role_entry.role if self.role_entry else None


class UserRole(Base):
    """Single role per user, kept apart from the profile row"""
    __tablename__ = "user_roles"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")  # admin|supervisor|technician|viewer
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    profile = relationship("Profile", back_populates="role_entry")


class Invitation(Base):
    __tablename__ = "invitations"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|accepted|expired
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    """Append-only audit trail"""
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # vehicle|vehicle_task|user_role|invitation
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|TRANSITION|COMMISSION|ROLE_CHANGE|INVITE
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_audit_entity", "entity", "entity_id"),
    )


# ---------- Reference data (shared across tenants) ----------

class Region(Base):
    __tablename__ = "regions"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    cert_checklist_url: Mapped[Optional[str]] = mapped_column(String(500))
    policy_links: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class TaskTemplate(Base):
    """One ordered commissioning step for a vehicle type (and optionally a region)"""
    __tablename__ = "task_templates"

    id: Mapped[uuid.UUID] = uuid_pk()
    template_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    region_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("regions.id", ondelete="SET NULL"), index=True)
    vehicle_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # ALS|BLS|CCT|Supervisor|Other
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    step_category: Mapped[str] = mapped_column(String(20), nullable=False)  # Safety|Compliance|Logistics|IT|Branding|Clinical|Admin
    sla_hours: Mapped[Optional[int]] = mapped_column(Integer)
    requires_evidence: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    evidence_type: Mapped[Optional[str]] = mapped_column(String(100))
    dependent_step_id: Mapped[Optional[str]] = mapped_column(String(50))  # step_order of the predecessor in the same template
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index("idx_template_type_order", "template_id", "vehicle_type", "step_order"),
    )


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = uuid_pk()
    vendor_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    service: Mapped[Optional[str]] = mapped_column(String(200))
    sla_hours: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class EquipmentCatalog(Base):
    __tablename__ = "equipment_catalog"

    id: Mapped[uuid.UUID] = uuid_pk()
    equipment_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text)
    manufacturer: Mapped[Optional[str]] = mapped_column(String(100))
    model: Mapped[Optional[str]] = mapped_column(String(100))
    part_number: Mapped[Optional[str]] = mapped_column(String(100))
    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("vendors.id", ondelete="SET NULL"))
    service_interval_days: Mapped[Optional[int]] = mapped_column(Integer)
    service_interval_miles: Mapped[Optional[int]] = mapped_column(Integer)
    requires_calibration: Mapped[bool] = mapped_column(Boolean, default=False)
    evidence_type: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


# ---------- Tenant-scoped tables ----------
# Columns live on mixins; each is mapped twice, once for the internal
# tenant and once under a demo_ prefix.

class VehicleColumns:
    id: Mapped[uuid.UUID] = uuid_pk()
    vehicle_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    vin: Mapped[str] = mapped_column(String(17), nullable=False, index=True)
    plate: Mapped[str] = mapped_column(String(20), nullable=False)
    make: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="Other", index=True)  # ALS|BLS|CCT|Supervisor|Other
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Draft", index=True)  # Draft|Commissioning|Ready|Out-of-Service|Decommissioned
    status_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    commissioning_template: Mapped[Optional[str]] = mapped_column(String(50))
    odometer: Mapped[Optional[int]] = mapped_column(Integer, default=0)
    fuel_type: Mapped[Optional[str]] = mapped_column(String(50))
    build_type: Mapped[Optional[str]] = mapped_column(String(50))
    mod_type: Mapped[Optional[str]] = mapped_column(String(50))
    in_service_date: Mapped[Optional[date]] = mapped_column(Date)
    primary_depot: Mapped[Optional[str]] = mapped_column(String(100))
    radio_id: Mapped[Optional[str]] = mapped_column(String(50))
    lytx_id: Mapped[Optional[str]] = mapped_column(String(50))
    # Compliance dates
    last_chp_inspection: Mapped[Optional[date]] = mapped_column(Date)
    next_chp_inspection: Mapped[Optional[date]] = mapped_column(Date)
    chp_permit: Mapped[Optional[str]] = mapped_column(String(50))
    dmv_expiration: Mapped[Optional[date]] = mapped_column(Date)
    smog_expiration: Mapped[Optional[date]] = mapped_column(Date)
    oc_expiration: Mapped[Optional[date]] = mapped_column(Date)
    la_county_expiration: Mapped[Optional[date]] = mapped_column(Date)
    riverside_expiration: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    @declared_attr
    def region_id(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("regions.id", ondelete="SET NULL"), index=True)

    @declared_attr
    def created_by(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))


class VehicleTaskColumns:
    vehicle_table = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    step_category: Mapped[str] = mapped_column(String(20), nullable=False)
    step_order: Mapped[Optional[int]] = mapped_column(Integer)
    dependent_step_id: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Not Started", index=True)
    percent_complete: Mapped[int] = mapped_column(Integer, default=0)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    evidence_url: Mapped[Optional[str]] = mapped_column(String(500))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    sla_hours: Mapped[Optional[int]] = mapped_column(Integer)
    requires_evidence: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    @declared_attr
    def vehicle_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True), ForeignKey(f"{cls.vehicle_table}.id", ondelete="CASCADE"), nullable=False, index=True
        )

    @declared_attr
    def template_id(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("task_templates.id", ondelete="SET NULL"), index=True)

    @declared_attr
    def assignee_id(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))

    @declared_attr
    def approved_by(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))


class InspectionColumns:
    vehicle_table = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    result: Mapped[Optional[str]] = mapped_column(String(20), default="Pending", index=True)  # Pass|Fail|Pending
    inspector: Mapped[Optional[str]] = mapped_column(String(100))
    findings: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    @declared_attr
    def vehicle_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True), ForeignKey(f"{cls.vehicle_table}.id", ondelete="CASCADE"), nullable=False, index=True
        )


class VehicleEquipmentColumns:
    vehicle_table = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    serial_number: Mapped[Optional[str]] = mapped_column(String(100))
    installed_date: Mapped[Optional[date]] = mapped_column(Date)
    last_service_date: Mapped[Optional[date]] = mapped_column(Date)
    next_service_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    @declared_attr
    def vehicle_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True), ForeignKey(f"{cls.vehicle_table}.id", ondelete="CASCADE"), nullable=False, index=True
        )

    @declared_attr
    def equipment_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True), ForeignKey("equipment_catalog.id", ondelete="CASCADE"), nullable=False, index=True
        )


class Vehicle(VehicleColumns, Base):
    __tablename__ = "vehicles"


class VehicleTask(VehicleTaskColumns, Base):
    __tablename__ = "vehicle_tasks"


class Inspection(InspectionColumns, Base):
    __tablename__ = "inspections"


class VehicleEquipment(VehicleEquipmentColumns, Base):
    __tablename__ = "vehicle_equipment"


class DemoVehicle(VehicleColumns, Base):
    __tablename__ = "demo_vehicles"


class DemoVehicleTask(VehicleTaskColumns, Base):
    __tablename__ = "demo_vehicle_tasks"
    vehicle_table = "demo_vehicles"


class DemoInspection(InspectionColumns, Base):
    __tablename__ = "demo_inspections"
    vehicle_table = "demo_vehicles"


class DemoVehicleEquipment(VehicleEquipmentColumns, Base):
    __tablename__ = "demo_vehicle_equipment"
    vehicle_table = "demo_vehicles"


# ---------- Smartsheet sync ----------

class SmartsheetSyncConfig(Base):
    __tablename__ = "smartsheet_sync_config"

    id: Mapped[uuid.UUID] = uuid_pk()
    sheet_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    sheet_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_interval_minutes: Mapped[int] = mapped_column(Integer, default=5)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class SmartsheetSyncLog(Base):
    """Append-only history of sync attempts, one row per sheet per attempt"""
    __tablename__ = "smartsheet_sync_log"

    id: Mapped[uuid.UUID] = uuid_pk()
    sheet_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success|error
    rows_synced: Mapped[Optional[int]] = mapped_column(Integer)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)


class SmartsheetData(Base):
    __tablename__ = "smartsheet_data"

    id: Mapped[uuid.UUID] = uuid_pk()
    sheet_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    sheet_name: Mapped[str] = mapped_column(String(255), nullable=False)
    row_id: Mapped[str] = mapped_column(String(50), nullable=False)
    row_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("sheet_id", "row_id", name="uq_smartsheet_sheet_row"),
    )
