"""
Smartsheet sync: pull sheets, upsert their rows, keep a history of attempts.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import SmartsheetData, SmartsheetSyncConfig, SmartsheetSyncLog
from .smartsheet_client import SmartsheetClient, sheet_rows


log = structlog.get_logger()

SYNC_LOG_LIMIT = 50
DEFAULT_SYNC_INTERVAL_MINUTES = 5


def _now(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now


# ---------- Configs ----------

def list_configs(db: Session) -> List[SmartsheetSyncConfig]:
    return db.query(SmartsheetSyncConfig).order_by(SmartsheetSyncConfig.created_at.desc()).all()


def add_config(db: Session, sheet_id: str, sheet_name: str) -> SmartsheetSyncConfig:
    """Register a sheet for scheduled sync; re-adding an existing sheet re-enables it."""
    sheet_id = str(sheet_id)
    config = db.query(SmartsheetSyncConfig).filter(SmartsheetSyncConfig.sheet_id == sheet_id).first()
    stamp = _now()
    if config:
        config.sheet_name = sheet_name
        config.sync_enabled = True
        config.updated_at = stamp
    else:
        config = SmartsheetSyncConfig(
            sheet_id=sheet_id,
            sheet_name=sheet_name,
            sync_enabled=True,
            sync_interval_minutes=DEFAULT_SYNC_INTERVAL_MINUTES,
            created_at=stamp,
            updated_at=stamp,
        )
        db.add(config)
    db.commit()
    db.refresh(config)
    log.info("smartsheet_config_added", sheet_id=sheet_id, sheet_name=sheet_name)
    return config


def toggle_config(db: Session, config: SmartsheetSyncConfig, enabled: bool) -> SmartsheetSyncConfig:
    config.sync_enabled = enabled
    config.updated_at = _now()
    db.commit()
    db.refresh(config)
    log.info("smartsheet_config_toggled", sheet_id=config.sheet_id, enabled=enabled)
    return config


def recent_logs(db: Session, limit: int = SYNC_LOG_LIMIT) -> List[SmartsheetSyncLog]:
    return db.query(SmartsheetSyncLog).order_by(SmartsheetSyncLog.synced_at.desc()).limit(limit).all()


# ---------- Sync ----------

def upsert_rows(db: Session, sheet_id: str, sheet_name: str, rows: List[Dict], now: datetime) -> int:
    """Insert or overwrite rows keyed by (sheet_id, row_id). The newest fetch wins."""
    existing = {
        r.row_id: r
        for r in db.query(SmartsheetData).filter(SmartsheetData.sheet_id == sheet_id).all()
    }
    for row in rows:
        record = existing.get(row["row_id"])
        if record:
            record.sheet_name = sheet_name
            record.row_data = row["data"]
            record.synced_at = now
        else:
            record = SmartsheetData(
                sheet_id=sheet_id,
                sheet_name=sheet_name,
                row_id=row["row_id"],
                row_data=row["data"],
                created_at=now,
                synced_at=now,
            )
            db.add(record)
            existing[row["row_id"]] = record
    return len(rows)


async def sync_sheets(
    db: Session,
    client: SmartsheetClient,
    sheet_ids: List[str],
    now: Optional[datetime] = None,
) -> List[Dict]:
    """
    Fetch the sheets concurrently, then persist each result on its own.

    One SmartsheetSyncLog row is appended per sheet per call. A sheet that
    failed to fetch gets an error log and leaves its stored rows untouched.
    """
    stamp = _now(now)
    fetched = await client.fetch_sheets([str(s) for s in sheet_ids])

    results = []
    for item in fetched:
        sheet_id = item["sheet_id"]
        if item["error"]:
            db.add(SmartsheetSyncLog(sheet_id=sheet_id, status="error", error_message=item["error"], synced_at=stamp))
            db.commit()
            results.append({"sheet_id": sheet_id, "status": "error", "rows_synced": 0, "error": item["error"]})
            continue

        sheet = item["data"] or {}
        sheet_name = sheet.get("name") or sheet_id
        count = upsert_rows(db, sheet_id, sheet_name, sheet_rows(sheet), stamp)
        db.add(SmartsheetSyncLog(sheet_id=sheet_id, status="success", rows_synced=count, synced_at=stamp))
        config = db.query(SmartsheetSyncConfig).filter(SmartsheetSyncConfig.sheet_id == sheet_id).first()
        if config:
            config.last_synced_at = stamp
            config.updated_at = stamp
        db.commit()
        log.info("smartsheet_sheet_synced", sheet_id=sheet_id, rows=count)
        results.append({"sheet_id": sheet_id, "status": "success", "rows_synced": count, "error": None})
    return results


def due_configs(db: Session, now: Optional[datetime] = None) -> List[SmartsheetSyncConfig]:
    stamp = _now(now)
    due = []
    for config in db.query(SmartsheetSyncConfig).filter(SmartsheetSyncConfig.sync_enabled == True).all():  # noqa: E712
        last = config.last_synced_at
        if last is not None and last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        interval = timedelta(minutes=config.sync_interval_minutes or DEFAULT_SYNC_INTERVAL_MINUTES)
        if last is None or stamp - last >= interval:
            due.append(config)
    return due


async def run_scheduled_sync(db: Session, client: SmartsheetClient, now: Optional[datetime] = None) -> List[Dict]:
    configs = due_configs(db, now)
    if not configs:
        log.info("smartsheet_scheduled_sync_idle")
        return []
    return await sync_sheets(db, client, [c.sheet_id for c in configs], now)
