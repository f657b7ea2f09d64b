import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_capability
from ..models.models import Profile
from ..schemas.fleet import TaskUpdate, TaskDecision, TaskResponse
from ..services.audit import record_audit
from ..services.commissioning import (
    TaskStatus,
    TaskTransitionError,
    apply_transition,
    find_predecessor,
    is_terminal,
)
from ..services.permissions import Capabilities
from ..services.tenancy import tenant_models
from .vehicles import task_out


router = APIRouter(prefix="/tasks", tags=["tasks"])

DECISION_STATUSES = {TaskStatus.approved.value, TaskStatus.rejected.value}


def _get_task_or_404(db: Session, user: Profile, task_id: uuid.UUID):
    Task = tenant_models(user.tenant_type).task
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _transition(db: Session, user: Profile, task, new_status: str, evidence_url=None):
    Task = tenant_models(user.tenant_type).task
    siblings = db.query(Task).filter(Task.vehicle_id == task.vehicle_id).all()
    previous = task.status
    try:
        apply_transition(
            task,
            new_status,
            actor_id=user.id,
            evidence_url=evidence_url,
            predecessor=find_predecessor(siblings, task),
        )
    except TaskTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if task.status != previous:
        record_audit(db, "vehicle_task", task.id, "TRANSITION", user.id, {"from": previous, "to": task.status})


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: uuid.UUID,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    task = _get_task_or_404(db, user, task_id)
    data = payload.dict(exclude_unset=True)
    new_status = data.pop("status", None)
    new_status = new_status.value if new_status is not None else None

    if new_status in DECISION_STATUSES and not Capabilities.for_role(user.role).can_approve:
        raise HTTPException(status_code=403, detail="Only supervisors and admins can approve or reject tasks")
    if is_terminal(task) and (set(data) - {"notes"} or (new_status and new_status != task.status)):
        raise HTTPException(status_code=409, detail=f"Task is {task.status} and can no longer change")
    if "assignee_id" in data and data["assignee_id"] is not None and not db.get(Profile, data["assignee_id"]):
        raise HTTPException(status_code=400, detail="Unknown assignee")

    evidence_url = data.pop("evidence_url", None)
    for field, value in data.items():
        setattr(task, field, value)
    if new_status:
        _transition(db, user, task, new_status, evidence_url=evidence_url)
    elif evidence_url is not None:
        task.evidence_url = evidence_url
    task.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(task)
    return task_out(task)


@router.post("/{task_id}/approve", response_model=TaskResponse)
def approve_task(
    task_id: uuid.UUID,
    payload: Optional[TaskDecision] = None,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_approve")),
):
    task = _get_task_or_404(db, user, task_id)
    _transition(db, user, task, TaskStatus.approved.value)
    if payload and payload.notes:
        task.notes = payload.notes
    db.commit()
    db.refresh(task)
    return task_out(task)


@router.post("/{task_id}/reject", response_model=TaskResponse)
def reject_task(
    task_id: uuid.UUID,
    payload: Optional[TaskDecision] = None,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_approve")),
):
    task = _get_task_or_404(db, user, task_id)
    _transition(db, user, task, TaskStatus.rejected.value)
    if payload and payload.notes:
        task.notes = payload.notes
    db.commit()
    db.refresh(task)
    return task_out(task)
