"""
CSV bulk import for vehicles and task templates.

File-level problems (size, row count, undecodable or malformed text) abort the
whole import. Row-level problems are collected and never stop other rows.
Valid rows are inserted in fixed-size batches, one batch at a time; a failed
batch is reported once and the next batch still runs.
"""
import csv
import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

import structlog
from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Region, TaskTemplate, Vehicle
from .commissioning import VehicleType, VehicleStatus, TaskCategory
from .validation import (
    FieldValidationError,
    sanitize_csv_cell,
    short_text,
    medium_text,
    validate_vin,
    validate_year,
    validate_choice,
    validate_text,
    validate_date,
    validate_non_negative_int,
    validate_bool_flag,
)


log = structlog.get_logger()


class ImportEntity(str, Enum):
    vehicles = "vehicles"
    task_templates = "task_templates"


VEHICLE_COLUMNS = [
    "VehicleId", "VIN", "Plate", "Make", "Model", "Year", "Type", "Region", "Status",
    "CommissioningTemplate", "Odometer", "FuelType", "InServiceDate", "PrimaryDepot",
    "RadioId", "LytxId", "LastCHPInspection", "NextCHPInspection",
]

TEMPLATE_COLUMNS = [
    "TemplateId", "Name", "Region", "VehicleType", "StepOrder", "StepName", "StepCategory",
    "SLAHours", "RequiresEvidence", "RequiresApproval", "EvidenceType", "DependentStepId",
]

ENTITY_LABELS = {
    ImportEntity.vehicles.value: "Vehicles",
    ImportEntity.task_templates.value: "Task Templates",
}


class ImportFileError(ValueError):
    pass


@dataclass
class ImportResult:
    entity: str
    success: int = 0
    errors: List[str] = field(default_factory=list)
    total_rows: int = 0

    def as_dict(self) -> dict:
        return {
            "entity": self.entity,
            "type": ENTITY_LABELS.get(self.entity, self.entity),
            "success": self.success,
            "errors": list(self.errors),
            "total_rows": self.total_rows,
        }


def expected_columns(entity: str) -> List[str]:
    if entity == ImportEntity.vehicles.value:
        return list(VEHICLE_COLUMNS)
    if entity == ImportEntity.task_templates.value:
        return list(TEMPLATE_COLUMNS)
    raise ImportFileError(f"Unsupported import type: {entity}")


def _decode(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ImportFileError("File must be UTF-8 encoded text")


def parse_csv(text: str, max_rows: Optional[int] = None) -> List[Dict[str, str]]:
    """Header-keyed rows; blank records skipped, every cell sanitized."""
    try:
        records = [
            values for values in csv.reader(io.StringIO(text, newline=""), strict=True)
            if any(v.strip() for v in values)
        ]
    except csv.Error as e:
        raise ImportFileError(f"Malformed CSV: {e}")
    if not records:
        return []

    headers = [h.strip() for h in records[0]]
    data = records[1:]
    if max_rows is not None and len(data) > max_rows:
        raise ImportFileError(f"File has {len(data)} rows; the limit is {max_rows}")

    rows = []
    for values in data:
        row = {}
        for idx, header in enumerate(headers):
            row[header] = sanitize_csv_cell(values[idx] if idx < len(values) else "")
        rows.append(row)
    return rows


def load_rows(content: Union[bytes, str], max_bytes: Optional[int] = None, max_rows: Optional[int] = None) -> List[Dict[str, str]]:
    max_bytes = settings.import_max_bytes if max_bytes is None else max_bytes
    max_rows = settings.import_max_rows if max_rows is None else max_rows
    size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
    if size > max_bytes:
        raise ImportFileError(f"File is too large; the limit is {max_bytes // (1024 * 1024)} MB")
    return parse_csv(_decode(content), max_rows=max_rows)


# ---------- Row schemas ----------

def _cell(row: Dict[str, str], column: str) -> str:
    return (row.get(column) or "").strip()


def region_lookup(db: Session) -> Dict[str, object]:
    return {code: rid for rid, code in db.query(Region.id, Region.code).all()}


def vehicle_record(row: Dict[str, str], regions: Dict[str, object]) -> dict:
    return {
        "vehicle_id": short_text(_cell(row, "VehicleId"), "VehicleId", "Vehicle ID", 50),
        "vin": validate_vin(_cell(row, "VIN"), "VIN"),
        "plate": short_text(_cell(row, "Plate"), "Plate", "License plate", 20),
        "make": short_text(_cell(row, "Make"), "Make", "Make", 100),
        "model": short_text(_cell(row, "Model"), "Model", "Model", 100),
        "year": validate_year(_cell(row, "Year"), "Year"),
        "type": validate_choice(_cell(row, "Type") or VehicleType.other.value, VehicleType, "Type"),
        "region_id": regions.get(_cell(row, "Region")),
        "status": validate_choice(_cell(row, "Status") or VehicleStatus.draft.value, VehicleStatus, "Status"),
        "commissioning_template": validate_text(_cell(row, "CommissioningTemplate"), "CommissioningTemplate", "Commissioning template", 50, required=False),
        "odometer": validate_non_negative_int(_cell(row, "Odometer") or "0", "Odometer"),
        "fuel_type": validate_text(_cell(row, "FuelType"), "FuelType", "Fuel type", 50, required=False),
        "in_service_date": validate_date(_cell(row, "InServiceDate"), "InServiceDate"),
        "primary_depot": validate_text(_cell(row, "PrimaryDepot"), "PrimaryDepot", "Primary depot", 100, required=False),
        "radio_id": validate_text(_cell(row, "RadioId"), "RadioId", "Radio ID", 50, required=False),
        "lytx_id": validate_text(_cell(row, "LytxId"), "LytxId", "Lytx ID", 50, required=False),
        "last_chp_inspection": validate_date(_cell(row, "LastCHPInspection"), "LastCHPInspection"),
        "next_chp_inspection": validate_date(_cell(row, "NextCHPInspection"), "NextCHPInspection"),
    }


def template_record(row: Dict[str, str], regions: Dict[str, object]) -> dict:
    step_order = validate_non_negative_int(_cell(row, "StepOrder"), "StepOrder", "Step order")
    sla = _cell(row, "SLAHours")
    dependent = validate_text(_cell(row, "DependentStepId"), "DependentStepId", "Dependent step", 50, required=False)
    if dependent is not None and dependent == str(step_order):
        raise FieldValidationError("DependentStepId", "A step cannot depend on itself")
    return {
        "template_id": short_text(_cell(row, "TemplateId"), "TemplateId", "Template ID", 50),
        "name": medium_text(_cell(row, "Name"), "Name", "Name", 200),
        "region_id": regions.get(_cell(row, "Region")),
        "vehicle_type": validate_choice(_cell(row, "VehicleType") or VehicleType.als.value, VehicleType, "VehicleType"),
        "step_order": step_order,
        "step_name": medium_text(_cell(row, "StepName"), "StepName", "Step name", 200),
        "step_category": validate_choice(_cell(row, "StepCategory"), TaskCategory, "StepCategory"),
        "sla_hours": validate_non_negative_int(sla, "SLAHours", "SLA hours") if sla else None,
        "requires_evidence": validate_bool_flag(_cell(row, "RequiresEvidence"), "RequiresEvidence"),
        "requires_approval": validate_bool_flag(_cell(row, "RequiresApproval"), "RequiresApproval"),
        "evidence_type": validate_text(_cell(row, "EvidenceType"), "EvidenceType", "Evidence type", 100, required=False),
        "dependent_step_id": dependent,
    }


def validate_rows(
    rows: List[Dict[str, str]],
    build: Callable[[Dict[str, str]], dict],
) -> Tuple[List[Tuple[int, dict]], List[str]]:
    valid: List[Tuple[int, dict]] = []
    errors: List[str] = []
    for number, row in enumerate(rows, start=1):
        try:
            valid.append((number, build(row)))
        except FieldValidationError as e:
            errors.append(f"Row {number}: {e.field}: {e.message}")
    return valid, errors


def insert_batches(
    db: Session,
    model,
    records: List[Tuple[int, dict]],
    batch_size: Optional[int] = None,
    extra: Optional[dict] = None,
) -> Tuple[int, List[str]]:
    """Insert sequentially in bounded batches; a failed batch is reported and skipped."""
    batch_size = batch_size or settings.import_batch_size
    inserted = 0
    errors: List[str] = []
    for start in range(0, len(records), batch_size):
        batch = records[start:start + batch_size]
        payload = [dict(rec, **(extra or {})) for _, rec in batch]
        first, last = batch[0][0], batch[-1][0]
        try:
            db.execute(insert(model), payload)
            db.commit()
            inserted += len(batch)
        except SQLAlchemyError as e:
            db.rollback()
            message = str(getattr(e, "orig", None) or e).splitlines()[0]
            errors.append(f"Rows {first}-{last}: {message}")
            log.warning("csv_import_batch_failed", table=model.__tablename__, first_row=first, last_row=last, error=message)
    return inserted, errors


def import_csv(
    db: Session,
    entity: str,
    content: Union[bytes, str],
    vehicle_model=None,
    created_by=None,
) -> ImportResult:
    """Run the full pipeline. Raises ImportFileError for file-level failures."""
    entity = entity.value if isinstance(entity, Enum) else entity
    expected_columns(entity)
    rows = load_rows(content)
    regions = region_lookup(db)

    if entity == ImportEntity.vehicles.value:
        model = vehicle_model or Vehicle
        valid, errors = validate_rows(rows, lambda r: vehicle_record(r, regions))
        extra = {"created_by": created_by} if created_by else None
    else:
        model = TaskTemplate
        valid, errors = validate_rows(rows, lambda r: template_record(r, regions))
        extra = None

    inserted, batch_errors = insert_batches(db, model, valid, extra=extra)
    result = ImportResult(entity=entity, success=inserted, errors=errors + batch_errors, total_rows=len(rows))
    log.info(
        "csv_import_finished",
        entity=entity,
        table=model.__tablename__,
        rows=len(rows),
        success=inserted,
        errors=len(result.errors),
    )
    return result
