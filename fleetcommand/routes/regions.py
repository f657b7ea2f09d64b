from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..models.models import Region
from ..schemas.fleet import RegionResponse


router = APIRouter(prefix="/regions", tags=["regions"])

DEFAULT_REGIONS = [
    ("OC", "Orange County"),
    ("LA", "Los Angeles"),
    ("UCI", "UC Irvine"),
    ("KP", "Kaiser Permanente"),
    ("RIV", "Riverside"),
]


def seed_default_regions(db: Session) -> int:
    """Insert any default region codes that are missing. Returns how many were added."""
    existing = {code for (code,) in db.query(Region.code).all()}
    added = 0
    for code, name in DEFAULT_REGIONS:
        if code not in existing:
            db.add(Region(code=code, name=name))
            added += 1
    if added:
        db.commit()
    return added


@router.get("", response_model=List[RegionResponse])
def list_regions(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return db.query(Region).order_by(Region.code.asc()).all()
