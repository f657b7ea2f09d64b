import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_sync_access
from ..models.models import SmartsheetSyncConfig
from ..schemas.smartsheet import (
    SyncConfigCreate,
    SyncConfigToggle,
    SyncConfigResponse,
    SyncLogResponse,
    FetchRequest,
    SheetResult,
    SyncResult,
)
from ..services.exports import export_filename, sheet_to_csv
from ..services.smartsheet_client import SmartsheetClient, SmartsheetError
from ..services import smartsheet_sync


router = APIRouter(prefix="/smartsheet", tags=["smartsheet"], dependencies=[Depends(require_sync_access)])


def get_smartsheet_client() -> SmartsheetClient:
    try:
        return SmartsheetClient()
    except SmartsheetError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/sheets")
async def list_sheets(client: SmartsheetClient = Depends(get_smartsheet_client)):
    try:
        return await client.list_sheets()
    except SmartsheetError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/fetch", response_model=List[SheetResult])
async def fetch_sheets(req: FetchRequest, client: SmartsheetClient = Depends(get_smartsheet_client)):
    """Per-sheet results; one failing sheet never fails the request."""
    return await client.fetch_sheets(req.sheet_ids)


@router.get("/sheets/{sheet_id}/export")
async def export_sheet(sheet_id: str, client: SmartsheetClient = Depends(get_smartsheet_client)):
    try:
        sheet = await client.get_sheet(sheet_id)
    except SmartsheetError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return Response(
        content=sheet_to_csv(sheet),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(sheet)}"'},
    )


@router.post("/sync", response_model=List[SyncResult])
async def sync_now(
    req: FetchRequest,
    db: Session = Depends(get_db),
    client: SmartsheetClient = Depends(get_smartsheet_client),
):
    return await smartsheet_sync.sync_sheets(db, client, req.sheet_ids)


# ---------- CONFIGS ----------

@router.get("/configs", response_model=List[SyncConfigResponse])
def list_configs(db: Session = Depends(get_db)):
    return smartsheet_sync.list_configs(db)


@router.post("/configs", response_model=SyncConfigResponse, status_code=201)
def add_config(payload: SyncConfigCreate, db: Session = Depends(get_db)):
    return smartsheet_sync.add_config(db, payload.sheet_id, payload.sheet_name)


@router.patch("/configs/{config_id}", response_model=SyncConfigResponse)
def toggle_config(config_id: uuid.UUID, payload: SyncConfigToggle, db: Session = Depends(get_db)):
    config = db.query(SmartsheetSyncConfig).filter(SmartsheetSyncConfig.id == config_id).first()
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    return smartsheet_sync.toggle_config(db, config, payload.enabled)


@router.post("/configs/{config_id}/sync", response_model=List[SyncResult])
async def sync_config(
    config_id: uuid.UUID,
    db: Session = Depends(get_db),
    client: SmartsheetClient = Depends(get_smartsheet_client),
):
    config = db.query(SmartsheetSyncConfig).filter(SmartsheetSyncConfig.id == config_id).first()
    if not config:
        raise HTTPException(status_code=404, detail="Sync config not found")
    return await smartsheet_sync.sync_sheets(db, client, [config.sheet_id])


@router.get("/logs", response_model=List[SyncLogResponse])
def list_logs(db: Session = Depends(get_db)):
    return smartsheet_sync.recent_logs(db)
