import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from ..services.validation import validate_text


class SyncConfigCreate(BaseModel):
    sheet_id: str
    sheet_name: str

    @field_validator("sheet_id")
    @classmethod
    def check_sheet_id(cls, v):
        return validate_text(v, "sheet_id", "Sheet ID", 50)

    @field_validator("sheet_name")
    @classmethod
    def check_sheet_name(cls, v):
        return validate_text(v, "sheet_name", "Sheet name", 255)


class SyncConfigToggle(BaseModel):
    enabled: bool


class SyncConfigResponse(BaseModel):
    id: uuid.UUID
    sheet_id: str
    sheet_name: str
    sync_enabled: bool
    sync_interval_minutes: int
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncLogResponse(BaseModel):
    id: uuid.UUID
    sheet_id: str
    status: str
    rows_synced: Optional[int] = None
    error_message: Optional[str] = None
    synced_at: datetime

    class Config:
        from_attributes = True


class FetchRequest(BaseModel):
    sheet_ids: List[str]

    @field_validator("sheet_ids")
    @classmethod
    def non_empty(cls, v):
        ids = [str(s).strip() for s in v if str(s).strip()]
        if not ids:
            raise ValueError("At least one sheet id is required")
        return ids


class SheetResult(BaseModel):
    sheet_id: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SyncResult(BaseModel):
    sheet_id: str
    status: str
    rows_synced: int = 0
    error: Optional[str] = None
