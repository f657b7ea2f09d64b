"""
Sample data for demo-tenant accounts.

Vehicles land in the demo_ tables only. Tasks for the commissioning vehicle
are walked through the status machine so the seeded history is one the
workflow could have produced.
"""
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import DemoVehicle, DemoVehicleTask, Profile
from .commissioning import TaskStatus, TaskCategory, VehicleStatus, VehicleType, apply_transition
from .permissions import TenantType


log = structlog.get_logger()


class DemoSeedError(ValueError):
    pass


class DemoDataExistsError(DemoSeedError):
    pass


DEMO_VEHICLES = [
    {
        "vehicle_id": "DEMO-001",
        "vin": "1FDXE4FS8PDC00001",
        "year": 2023,
        "make": "Ford",
        "model": "E-450",
        "plate": "DEMO001",
        "type": VehicleType.als.value,
        "status": VehicleStatus.ready.value,
        "fuel_type": "Diesel",
        "build_type": "Type III",
        "mod_type": "Standard",
        "primary_depot": "Demo Depot",
    },
    {
        "vehicle_id": "DEMO-002",
        "vin": "W1Y4ECHY8RT000002",
        "year": 2024,
        "make": "Mercedes",
        "model": "Sprinter",
        "plate": "DEMO002",
        "type": VehicleType.bls.value,
        "status": VehicleStatus.commissioning.value,
        "fuel_type": "Diesel",
        "build_type": "Type II",
        "mod_type": "Standard",
        "primary_depot": "Demo Depot",
    },
    {
        "vehicle_id": "DEMO-003",
        "vin": "1GCWGAFP3P1000003",
        "year": 2023,
        "make": "Chevrolet",
        "model": "Express",
        "plate": "DEMO003",
        "type": VehicleType.cct.value,
        "status": VehicleStatus.draft.value,
        "fuel_type": "Gas",
        "build_type": "Type I",
        "mod_type": "Custom",
        "primary_depot": "Demo Depot",
    },
]

# (step, category, requires_evidence, requires_approval, sla_hours, status path, final percent)
DEMO_TASKS = [
    ("Initial Inspection", TaskCategory.safety.value, True, False, 24,
     [TaskStatus.in_progress, TaskStatus.submitted, TaskStatus.approved], 100),
    ("Equipment Installation", TaskCategory.logistics.value, True, True, 48,
     [TaskStatus.in_progress], 60),
    ("Final Testing", TaskCategory.compliance.value, True, True, 24,
     [], 0),
]


def seed_demo_data(db: Session, profile: Profile, now: Optional[datetime] = None) -> dict:
    if profile.tenant_type != TenantType.demo.value:
        raise DemoSeedError("User is not a demo user")

    # vehicle_id is unique per table; suffix with the owner to keep accounts apart
    suffix = str(profile.id)[:8].upper()
    codes = [f"{data['vehicle_id']}-{suffix}" for data in DEMO_VEHICLES]
    if db.query(DemoVehicle.id).filter(DemoVehicle.vehicle_id.in_(codes)).first() is not None:
        raise DemoDataExistsError("Demo data has already been seeded for this account")

    stamp = now or datetime.now(timezone.utc)
    vehicles = []
    for data, code in zip(DEMO_VEHICLES, codes):
        row = dict(data, vehicle_id=code)
        vehicle = DemoVehicle(**row, status_date=stamp, created_by=profile.id, created_at=stamp)
        db.add(vehicle)
        vehicles.append(vehicle)
    db.flush()

    commissioning_vehicle = vehicles[1]
    tasks = []
    for order, (name, category, evidence, approval, sla, path, percent) in enumerate(DEMO_TASKS, start=1):
        task = DemoVehicleTask(
            vehicle_id=commissioning_vehicle.id,
            step_name=name,
            step_category=category,
            step_order=order,
            status=TaskStatus.not_started.value,
            percent_complete=0,
            requires_evidence=evidence,
            requires_approval=approval,
            sla_hours=sla,
            created_at=stamp,
        )
        for status in path:
            evidence_url = "demo://evidence/initial-inspection.jpg" if status == TaskStatus.submitted else None
            apply_transition(task, status, actor_id=profile.id, evidence_url=evidence_url, now=stamp)
        task.percent_complete = max(task.percent_complete or 0, percent)
        db.add(task)
        tasks.append(task)

    db.commit()
    log.info("demo_data_seeded", user_id=str(profile.id), vehicles=len(vehicles), tasks=len(tasks))
    return {
        "success": True,
        "message": "Demo data seeded successfully",
        "vehicles": len(vehicles),
        "tasks": len(tasks),
    }
