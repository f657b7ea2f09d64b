import uuid
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator

from ..services.commissioning import VehicleType, VehicleStatus, TaskCategory, TaskStatus
from ..services.validation import (
    validate_vin,
    validate_year,
    validate_text,
    validate_non_negative_int,
    validate_percentage,
    long_text,
)


class InspectionResult(str, Enum):
    pass_result = "Pass"
    fail = "Fail"
    pending = "Pending"


def _blank_to_none(v):
    if v is None:
        return None
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


# Vehicle Schemas
class VehicleBase(BaseModel):
    vin: str
    plate: str
    make: str
    model: str
    year: int
    type: VehicleType = VehicleType.other
    status: VehicleStatus = VehicleStatus.draft
    region_id: Optional[uuid.UUID] = None
    commissioning_template: Optional[str] = None
    odometer: Optional[int] = 0
    fuel_type: Optional[str] = None
    build_type: Optional[str] = None
    mod_type: Optional[str] = None
    in_service_date: Optional[date] = None
    primary_depot: Optional[str] = None
    radio_id: Optional[str] = None
    lytx_id: Optional[str] = None
    last_chp_inspection: Optional[date] = None
    next_chp_inspection: Optional[date] = None
    chp_permit: Optional[str] = None
    dmv_expiration: Optional[date] = None
    smog_expiration: Optional[date] = None
    oc_expiration: Optional[date] = None
    la_county_expiration: Optional[date] = None
    riverside_expiration: Optional[date] = None


class VehicleCreate(VehicleBase):
    vehicle_id: str

    @field_validator("vehicle_id")
    @classmethod
    def check_vehicle_id(cls, v):
        return validate_text(v, "vehicle_id", "Vehicle ID", 50)

    @field_validator("vin")
    @classmethod
    def check_vin(cls, v):
        return validate_vin(v)

    @field_validator("year", mode="before")
    @classmethod
    def check_year(cls, v):
        return validate_year(v)

    @field_validator("plate")
    @classmethod
    def check_plate(cls, v):
        return validate_text(v, "plate", "License plate", 20)

    @field_validator("make", "model")
    @classmethod
    def check_make_model(cls, v, info):
        return validate_text(v, info.field_name, info.field_name.capitalize(), 100)

    @field_validator("odometer", mode="before")
    @classmethod
    def check_odometer(cls, v):
        return None if v in (None, "") else validate_non_negative_int(v, "odometer", "Odometer")

    @field_validator(
        "commissioning_template", "fuel_type", "build_type", "mod_type", "primary_depot",
        "radio_id", "lytx_id", "chp_permit", mode="before",
    )
    @classmethod
    def empty_to_none(cls, v):
        return _blank_to_none(v)


class VehicleUpdate(BaseModel):
    vin: Optional[str] = None
    plate: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    type: Optional[VehicleType] = None
    status: Optional[VehicleStatus] = None
    region_id: Optional[uuid.UUID] = None
    commissioning_template: Optional[str] = None
    odometer: Optional[int] = None
    fuel_type: Optional[str] = None
    build_type: Optional[str] = None
    mod_type: Optional[str] = None
    in_service_date: Optional[date] = None
    primary_depot: Optional[str] = None
    radio_id: Optional[str] = None
    lytx_id: Optional[str] = None
    last_chp_inspection: Optional[date] = None
    next_chp_inspection: Optional[date] = None
    chp_permit: Optional[str] = None
    dmv_expiration: Optional[date] = None
    smog_expiration: Optional[date] = None
    oc_expiration: Optional[date] = None
    la_county_expiration: Optional[date] = None
    riverside_expiration: Optional[date] = None

    @field_validator("vin")
    @classmethod
    def check_vin(cls, v):
        return None if v is None else validate_vin(v)

    @field_validator("year", mode="before")
    @classmethod
    def check_year(cls, v):
        return None if v is None else validate_year(v)

    @field_validator("plate")
    @classmethod
    def check_plate(cls, v):
        return None if v is None else validate_text(v, "plate", "License plate", 20)

    @field_validator("odometer", mode="before")
    @classmethod
    def check_odometer(cls, v):
        return None if v in (None, "") else validate_non_negative_int(v, "odometer", "Odometer")


class VehicleResponse(VehicleBase):
    id: uuid.UUID
    vehicle_id: str
    status_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None

    class Config:
        from_attributes = True


# Task Schemas
class TaskUpdate(BaseModel):
    status: Optional[TaskStatus] = None
    percent_complete: Optional[int] = None
    assignee_id: Optional[uuid.UUID] = None
    evidence_url: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("percent_complete", mode="before")
    @classmethod
    def check_percent(cls, v):
        return None if v is None else validate_percentage(v)

    @field_validator("evidence_url")
    @classmethod
    def check_evidence(cls, v):
        return None if v is None else validate_text(v, "evidence_url", "Evidence", 500)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v):
        return long_text(v, "notes", "Notes")


class TaskDecision(BaseModel):
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v):
        return long_text(v, "notes", "Notes")


class TaskResponse(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    template_id: Optional[uuid.UUID] = None
    step_name: str
    step_category: TaskCategory
    step_order: Optional[int] = None
    dependent_step_id: Optional[str] = None
    status: TaskStatus
    percent_complete: int = 0
    assignee_id: Optional[uuid.UUID] = None
    approved_by: Optional[uuid.UUID] = None
    approved_on: Optional[datetime] = None
    due_date: Optional[datetime] = None
    evidence_url: Optional[str] = None
    notes: Optional[str] = None
    sla_hours: Optional[int] = None
    requires_evidence: bool = False
    requires_approval: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    sla_breached: bool = False

    class Config:
        from_attributes = True


class CommissioningResponse(BaseModel):
    vehicle: VehicleResponse
    tasks_created: int
    tasks: List[TaskResponse]
    progress: Dict


# Inspection Schemas
class InspectionCreate(BaseModel):
    type: str
    scheduled_date: date
    result: InspectionResult = InspectionResult.pending
    inspector: Optional[str] = None
    findings: Optional[str] = None

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        return validate_text(v, "type", "Inspection type", 100)

    @field_validator("inspector")
    @classmethod
    def check_inspector(cls, v):
        return validate_text(v, "inspector", "Inspector", 100, required=False)

    @field_validator("findings")
    @classmethod
    def check_findings(cls, v):
        return long_text(v, "findings", "Findings")


class InspectionUpdate(BaseModel):
    scheduled_date: Optional[date] = None
    result: Optional[InspectionResult] = None
    inspector: Optional[str] = None
    findings: Optional[str] = None

    @field_validator("findings")
    @classmethod
    def check_findings(cls, v):
        return long_text(v, "findings", "Findings")


class InspectionResponse(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    type: str
    scheduled_date: date
    result: Optional[InspectionResult] = None
    inspector: Optional[str] = None
    findings: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RegionResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    cert_checklist_url: Optional[str] = None
    policy_links: Optional[str] = None

    class Config:
        from_attributes = True
