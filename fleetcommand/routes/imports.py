from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_capability
from ..models.models import Profile
from ..services.csv_import import ImportEntity, ImportFileError, expected_columns, import_csv
from ..services.permissions import TenantType
from ..services.tenancy import tenant_models


router = APIRouter(prefix="/imports", tags=["imports"])


@router.get("/{entity}/columns")
def import_columns(entity: ImportEntity, _=Depends(get_current_user)):
    return {"entity": entity.value, "columns": expected_columns(entity.value)}


@router.post("/{entity}")
async def import_file(
    entity: ImportEntity,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: Profile = Depends(require_capability("can_edit_vehicles")),
):
    """
    Bulk import a CSV file.

    File-level problems abort with 400 and persist nothing. Otherwise the
    response carries the persisted row count and every row and batch error.
    """
    if entity == ImportEntity.task_templates and user.tenant_type != TenantType.internal.value:
        raise HTTPException(status_code=403, detail="Task templates can only be imported by internal accounts")
    content = await file.read()
    try:
        result = import_csv(
            db,
            entity,
            content,
            vehicle_model=tenant_models(user.tenant_type).vehicle,
            created_by=user.id,
        )
    except ImportFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.as_dict()
