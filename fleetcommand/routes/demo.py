from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_tenant
from ..models.models import Profile
from ..services.demo_seed import DemoDataExistsError, DemoSeedError, seed_demo_data
from ..services.permissions import TenantType


router = APIRouter(prefix="/demo", tags=["demo"])


@router.post("/seed")
def seed(db: Session = Depends(get_db), user: Profile = Depends(require_tenant(TenantType.demo.value))):
    """Seed sample vehicles and tasks for the calling demo account."""
    try:
        return seed_demo_data(db, user)
    except DemoDataExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DemoSeedError as e:
        raise HTTPException(status_code=400, detail=str(e))
