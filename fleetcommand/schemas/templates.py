import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ..services.commissioning import VehicleType, TaskCategory
from ..services.validation import FieldValidationError, validate_text, validate_non_negative_int


class TaskTemplateCreate(BaseModel):
    template_id: str
    name: str
    region_id: Optional[uuid.UUID] = None
    vehicle_type: VehicleType = VehicleType.als
    step_order: int
    step_name: str
    step_category: TaskCategory
    sla_hours: Optional[int] = None
    requires_evidence: bool = False
    requires_approval: bool = False
    evidence_type: Optional[str] = None
    dependent_step_id: Optional[str] = None

    @field_validator("template_id")
    @classmethod
    def check_template_id(cls, v):
        return validate_text(v, "template_id", "Template ID", 50)

    @field_validator("name", "step_name")
    @classmethod
    def check_names(cls, v, info):
        return validate_text(v, info.field_name, info.field_name.replace("_", " ").capitalize(), 200)

    @field_validator("step_order", "sla_hours", mode="before")
    @classmethod
    def check_counts(cls, v, info):
        return None if v is None else validate_non_negative_int(v, info.field_name)

    @field_validator("dependent_step_id", "evidence_type", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @model_validator(mode="after")
    def no_self_dependency(self):
        if self.dependent_step_id is not None and self.dependent_step_id == str(self.step_order):
            raise FieldValidationError("dependent_step_id", "A step cannot depend on itself")
        return self


class TaskTemplateResponse(BaseModel):
    id: uuid.UUID
    template_id: str
    name: str
    region_id: Optional[uuid.UUID] = None
    vehicle_type: VehicleType
    step_order: int
    step_name: str
    step_category: TaskCategory
    sla_hours: Optional[int] = None
    requires_evidence: bool = False
    requires_approval: bool = False
    evidence_type: Optional[str] = None
    dependent_step_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
