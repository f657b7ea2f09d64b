"""
Equipment service schedules.

An installed item is due for service `service_interval_days` after its last
service, or after installation when it has never been serviced.
"""
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import EquipmentCatalog


def next_service_date(
    catalog: EquipmentCatalog,
    installed_date: Optional[date],
    last_service_date: Optional[date],
) -> Optional[date]:
    base = last_service_date or installed_date
    if base is None or not catalog.service_interval_days:
        return None
    return base + timedelta(days=catalog.service_interval_days)


def record_service(db: Session, item, service_date: date, notes: Optional[str] = None):
    catalog = db.get(EquipmentCatalog, item.equipment_id)
    item.last_service_date = service_date
    item.next_service_date = next_service_date(catalog, item.installed_date, service_date) if catalog else None
    if notes:
        item.notes = notes
    return item


def services_due(db: Session, equipment_model, within_days: int = 30, today: Optional[date] = None) -> List:
    """Installed items whose next service falls on or before today + within_days, overdue first."""
    today = today or date.today()
    horizon = today + timedelta(days=within_days)
    return (
        db.query(equipment_model)
        .filter(equipment_model.next_service_date.isnot(None))
        .filter(equipment_model.next_service_date <= horizon)
        .order_by(equipment_model.next_service_date.asc())
        .all()
    )
