"""
Commissioning workflow: task templates materialized into per-vehicle tasks,
and the status machine every task write goes through.
"""
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from ..models.models import TaskTemplate


log = structlog.get_logger()


class VehicleType(str, Enum):
    als = "ALS"
    bls = "BLS"
    cct = "CCT"
    supervisor = "Supervisor"
    other = "Other"


class VehicleStatus(str, Enum):
    draft = "Draft"
    commissioning = "Commissioning"
    ready = "Ready"
    out_of_service = "Out-of-Service"
    decommissioned = "Decommissioned"


class TaskCategory(str, Enum):
    safety = "Safety"
    compliance = "Compliance"
    logistics = "Logistics"
    it = "IT"
    branding = "Branding"
    clinical = "Clinical"
    admin = "Admin"


class TaskStatus(str, Enum):
    not_started = "Not Started"
    in_progress = "In Progress"
    blocked = "Blocked"
    submitted = "Submitted"
    approved = "Approved"
    rejected = "Rejected"


TERMINAL_STATUSES = frozenset({TaskStatus.approved.value, TaskStatus.rejected.value})

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    TaskStatus.not_started.value: frozenset({TaskStatus.in_progress.value}),
    TaskStatus.in_progress.value: frozenset({TaskStatus.blocked.value, TaskStatus.submitted.value}),
    TaskStatus.blocked.value: frozenset({TaskStatus.in_progress.value}),
    TaskStatus.submitted.value: frozenset({TaskStatus.approved.value, TaskStatus.rejected.value}),
    TaskStatus.approved.value: frozenset(),
    TaskStatus.rejected.value: frozenset(),
}


class TaskTransitionError(ValueError):
    pass


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; treat them as UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _now(now: Optional[datetime] = None) -> datetime:
    return _utc(now) if now else datetime.now(timezone.utc)


def _status_value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def find_predecessor(tasks: Iterable, task) -> Optional[object]:
    """The task a step waits on, resolved by step_order among a vehicle's tasks."""
    ref = (task.dependent_step_id or "").strip() if task.dependent_step_id else ""
    if not ref:
        return None
    for other in tasks:
        if other is task or other.id == task.id:
            continue
        if other.step_order is not None and str(other.step_order) == ref:
            return other
        if str(other.id) == ref:
            return other
    return None


def check_transition(
    task,
    new_status,
    *,
    approver_id: Optional[uuid.UUID] = None,
    evidence_url: Optional[str] = None,
    predecessor=None,
) -> str:
    current = task.status or TaskStatus.not_started.value
    target = _status_value(new_status)
    if target not in ALLOWED_TRANSITIONS:
        raise TaskTransitionError(f"Unknown task status: {target}")
    if target == current:
        return target
    if current in TERMINAL_STATUSES:
        raise TaskTransitionError(f"Task is {current} and can no longer change")
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise TaskTransitionError(f"Cannot move task from {current} to {target}")

    evidence = evidence_url if evidence_url is not None else task.evidence_url
    if target == TaskStatus.submitted.value and task.requires_evidence and not evidence:
        raise TaskTransitionError("Evidence is required before submitting this task")
    if target == TaskStatus.approved.value and approver_id is None:
        raise TaskTransitionError("An approver is required to approve this task")
    if (
        current == TaskStatus.blocked.value
        and target == TaskStatus.in_progress.value
        and predecessor is not None
        and predecessor.status != TaskStatus.approved.value
    ):
        raise TaskTransitionError(
            f"Task is waiting on step {task.dependent_step_id} ({predecessor.step_name})"
        )
    return target


def apply_transition(
    task,
    new_status,
    *,
    actor_id: Optional[uuid.UUID] = None,
    evidence_url: Optional[str] = None,
    predecessor=None,
    now: Optional[datetime] = None,
):
    """Validate and apply a status change. The only code path that writes task.status."""
    previous = task.status or TaskStatus.not_started.value
    target = check_transition(
        task,
        new_status,
        approver_id=actor_id,
        evidence_url=evidence_url,
        predecessor=predecessor,
    )
    stamp = _now(now)
    if evidence_url is not None:
        task.evidence_url = evidence_url
    if target != previous:
        task.status = target
        if target == TaskStatus.approved.value:
            task.approved_by = actor_id
            task.approved_on = stamp
        if target in (TaskStatus.submitted.value, TaskStatus.approved.value):
            task.percent_complete = 100
        log.info("task_transition", task_id=str(task.id), from_status=previous, to_status=target)
    task.updated_at = stamp
    return task


def is_terminal(task) -> bool:
    return task.status in TERMINAL_STATUSES


def sla_deadline(task) -> Optional[datetime]:
    if task.sla_hours is None or task.created_at is None:
        return None
    return _utc(task.created_at) + timedelta(hours=task.sla_hours)


def is_sla_breached(task, now: Optional[datetime] = None) -> bool:
    deadline = sla_deadline(task)
    if deadline is None or is_terminal(task):
        return False
    return _now(now) > deadline


def applicable_templates(
    db: Session,
    vehicle_type: str,
    region_id: Optional[uuid.UUID] = None,
    template_id: Optional[str] = None,
) -> List[TaskTemplate]:
    q = db.query(TaskTemplate).filter(TaskTemplate.vehicle_type == vehicle_type)
    if template_id:
        q = q.filter(TaskTemplate.template_id == template_id)
    rows = q.order_by(TaskTemplate.template_id.asc(), TaskTemplate.step_order.asc()).all()

    by_template: Dict[str, List[TaskTemplate]] = {}
    for row in rows:
        if row.region_id is not None and row.region_id != region_id:
            continue
        by_template.setdefault(row.template_id, []).append(row)

    selected: List[TaskTemplate] = []
    for rows_for_template in by_template.values():
        regional = [r for r in rows_for_template if r.region_id is not None]
        selected.extend(regional or rows_for_template)
    selected.sort(key=lambda r: (r.step_order, r.template_id))
    return selected


def instantiate_tasks(db: Session, vehicle, task_model, now: Optional[datetime] = None) -> list:
    """Create one task per applicable template step that the vehicle does not have yet."""
    stamp = _now(now)
    templates = applicable_templates(db, vehicle.type, vehicle.region_id, vehicle.commissioning_template)
    existing = {
        t.template_id
        for t in db.query(task_model).filter(task_model.vehicle_id == vehicle.id).all()
        if t.template_id is not None
    }
    created = []
    for tpl in templates:
        if tpl.id in existing:
            continue
        task = task_model(
            vehicle_id=vehicle.id,
            template_id=tpl.id,
            step_name=tpl.step_name,
            step_category=tpl.step_category,
            step_order=tpl.step_order,
            dependent_step_id=tpl.dependent_step_id,
            status=TaskStatus.not_started.value,
            percent_complete=0,
            sla_hours=tpl.sla_hours,
            requires_evidence=bool(tpl.requires_evidence),
            requires_approval=bool(tpl.requires_approval),
            due_date=stamp + timedelta(hours=tpl.sla_hours) if tpl.sla_hours is not None else None,
            created_at=stamp,
        )
        db.add(task)
        created.append(task)
    db.flush()
    return created


def start_commissioning(db: Session, vehicle, task_model, now: Optional[datetime] = None) -> list:
    stamp = _now(now)
    if vehicle.status != VehicleStatus.commissioning.value:
        vehicle.status = VehicleStatus.commissioning.value
        vehicle.status_date = stamp
    vehicle.updated_at = stamp
    created = instantiate_tasks(db, vehicle, task_model, now=stamp)
    log.info("commissioning_started", vehicle_id=vehicle.vehicle_id, tasks_created=len(created))
    return created


def summarize_progress(tasks: Sequence, now: Optional[datetime] = None) -> dict:
    counts = {s.value: 0 for s in TaskStatus}
    breached = 0
    total_percent = 0
    for t in tasks:
        counts[t.status] = counts.get(t.status, 0) + 1
        total_percent += t.percent_complete or 0
        if is_sla_breached(t, now):
            breached += 1
    total = len(tasks)
    return {
        "total": total,
        "by_status": counts,
        "sla_breached": breached,
        "percent_complete": round(total_percent / total) if total else 0,
        "approved": counts[TaskStatus.approved.value],
    }
