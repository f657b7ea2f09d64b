import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ..services.validation import (
    validate_text,
    validate_email,
    validate_phone,
    validate_non_negative_int,
    long_text,
)


# Vendor Schemas
class VendorCreate(BaseModel):
    vendor_id: str
    name: str
    contact: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    service: Optional[str] = None
    sla_hours: Optional[int] = None

    @field_validator("vendor_id")
    @classmethod
    def check_vendor_id(cls, v):
        return validate_text(v, "vendor_id", "Vendor ID", 50)

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return validate_text(v, "name", "Name", 200)

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v):
        return validate_email(v) if v not in (None, "") else None

    @field_validator("phone", mode="before")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v) if v not in (None, "") else None

    @field_validator("sla_hours", mode="before")
    @classmethod
    def check_sla(cls, v):
        return None if v in (None, "") else validate_non_negative_int(v, "sla_hours", "SLA hours")


class VendorResponse(BaseModel):
    id: uuid.UUID
    vendor_id: str
    name: str
    contact: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    service: Optional[str] = None
    sla_hours: Optional[int] = None

    class Config:
        from_attributes = True


# Catalog Schemas
class EquipmentCatalogCreate(BaseModel):
    equipment_id: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    part_number: Optional[str] = None
    vendor_id: Optional[uuid.UUID] = None
    service_interval_days: Optional[int] = None
    service_interval_miles: Optional[int] = None
    requires_calibration: bool = False
    evidence_type: Optional[str] = None

    @field_validator("equipment_id")
    @classmethod
    def check_equipment_id(cls, v):
        return validate_text(v, "equipment_id", "Equipment ID", 50)

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return validate_text(v, "name", "Name", 200)

    @field_validator("description")
    @classmethod
    def check_description(cls, v):
        return long_text(v, "description", "Description")

    @field_validator("service_interval_days", "service_interval_miles", mode="before")
    @classmethod
    def check_intervals(cls, v, info):
        return None if v in (None, "") else validate_non_negative_int(v, info.field_name)


class EquipmentCatalogResponse(BaseModel):
    id: uuid.UUID
    equipment_id: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    part_number: Optional[str] = None
    vendor_id: Optional[uuid.UUID] = None
    service_interval_days: Optional[int] = None
    service_interval_miles: Optional[int] = None
    requires_calibration: bool = False
    evidence_type: Optional[str] = None

    class Config:
        from_attributes = True


# Installed equipment
class VehicleEquipmentCreate(BaseModel):
    equipment_id: uuid.UUID
    serial_number: Optional[str] = None
    installed_date: Optional[date] = None
    last_service_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("serial_number")
    @classmethod
    def check_serial(cls, v):
        return validate_text(v, "serial_number", "Serial number", 100, required=False)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v):
        return long_text(v, "notes", "Notes")


class ServiceRecord(BaseModel):
    service_date: date
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v):
        return long_text(v, "notes", "Notes")


class VehicleEquipmentResponse(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    equipment_id: uuid.UUID
    serial_number: Optional[str] = None
    installed_date: Optional[date] = None
    last_service_date: Optional[date] = None
    next_service_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
