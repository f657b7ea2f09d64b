from typing import NamedTuple, Optional

from ..models.models import (
    Vehicle,
    VehicleTask,
    Inspection,
    VehicleEquipment,
    DemoVehicle,
    DemoVehicleTask,
    DemoInspection,
    DemoVehicleEquipment,
)
from .permissions import TenantType


class TenantModels(NamedTuple):
    vehicle: type
    task: type
    inspection: type
    equipment: type


INTERNAL_MODELS = TenantModels(Vehicle, VehicleTask, Inspection, VehicleEquipment)
DEMO_MODELS = TenantModels(DemoVehicle, DemoVehicleTask, DemoInspection, DemoVehicleEquipment)


def tenant_models(tenant_type: Optional[str]) -> TenantModels:
    """Table set a tenant reads and writes; demo users never touch production rows."""
    if tenant_type == TenantType.demo.value:
        return DEMO_MODELS
    return INTERNAL_MODELS
