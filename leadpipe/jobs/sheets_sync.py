"""
Google Sheets lead import.

Per active config:
1. Rate gate: skip while `sync_interval_minutes` has not elapsed since the last run.
2. Fetch `<sheet>!A:Z`; fewer than two rows (header + data) reports `empty`.
3. Map rows to leads and drop any whose phone hash already exists for the
   company, or already appeared earlier in the same sheet.
4. Insert the rest, advance `last_synced_at`, write a SheetSyncLog row.

A failing config rolls back its own work, gets an error SheetSyncLog row, and
the loop moves on.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import select, update

from ..models import Lead, SheetSyncConfig, SheetSyncLog
from ..schemas import SheetSyncConfigRecord, decode
from ..services.sheets import parse_sheet_timestamp, parse_sheet_to_leads, phone_hash, sync_range
from .base import JobContext

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 60
LEAD_SOURCE = "google_sheets"


def is_due(config: SheetSyncConfigRecord, now: datetime) -> bool:
    if config.last_synced_at is None:
        return True
    interval = timedelta(minutes=config.sync_interval_minutes or DEFAULT_INTERVAL_MINUTES)
    return now - config.last_synced_at >= interval


def sync_config(ctx: JobContext, config: SheetSyncConfigRecord) -> Dict[str, Any]:
    db, now = ctx.db, ctx.now
    rows = ctx.sheets.fetch_sheet_data(config.spreadsheet_id, sync_range(config.sheet_name))
    if len(rows) < 2:
        return {"spreadsheetId": config.spreadsheet_id, "status": "empty", "imported": 0}

    sheet_leads = parse_sheet_to_leads(rows, config.column_mapping)

    seen = set(db.execute(
        select(Lead.phone_hash).where(Lead.company_id == config.company_id)
    ).scalars().all())

    new_leads: List[Lead] = []
    for lead in sheet_leads:
        digest = phone_hash(lead.phone)
        if digest in seen:
            continue
        seen.add(digest)
        new_leads.append(Lead(
            company_id=config.company_id,
            landing_page_id=config.landing_page_id,
            name=lead.name,
            phone=lead.phone,
            phone_hash=digest,
            email=lead.email,
            source=LEAD_SOURCE,
            custom_fields=lead.custom_fields,
            status="new",
            created_at=parse_sheet_timestamp(lead.created_at) or now,
        ))

    db.add_all(new_leads)
    db.execute(
        update(SheetSyncConfig)
        .where(SheetSyncConfig.id == config.id)
        .values(last_synced_at=now)
    )
    db.add(SheetSyncLog(
        company_id=config.company_id,
        spreadsheet_id=config.spreadsheet_id,
        sheet_name=config.sheet_name,
        imported_count=len(new_leads),
        total_rows=len(sheet_leads),
        duplicates_skipped=len(sheet_leads) - len(new_leads),
        created_at=now,
    ))
    db.commit()

    logger.info(
        "Sheet %s: imported %d of %d rows for company=%s",
        config.spreadsheet_id, len(new_leads), len(sheet_leads), config.company_id,
    )
    return {
        "spreadsheetId": config.spreadsheet_id,
        "status": "success",
        "imported": len(new_leads),
        "total": len(sheet_leads),
    }


def _log_failure(ctx: JobContext, company_id: int, spreadsheet_id: str, sheet_name, message: str) -> None:
    ctx.db.add(SheetSyncLog(
        company_id=company_id,
        spreadsheet_id=spreadsheet_id,
        sheet_name=sheet_name,
        imported_count=0,
        error_message=message,
        created_at=ctx.now,
    ))
    ctx.db.commit()


def run_sheets_sync(ctx: JobContext) -> Dict[str, Any]:
    db = ctx.db
    configs = db.execute(
        select(SheetSyncConfig).where(SheetSyncConfig.is_active.is_(True)).order_by(SheetSyncConfig.id)
    ).scalars().all()

    if not configs:
        return {"message": "No active sync configs", "synced": 0}

    # Plain values so a rollback inside the loop cannot expire what we still need
    snapshots = [
        (row.id, row.company_id, row.spreadsheet_id, row.sheet_name, row) for row in configs
    ]

    results = []
    for config_id, company_id, spreadsheet_id, sheet_name, row in snapshots:
        try:
            config = decode(SheetSyncConfigRecord, row)
            if not is_due(config, ctx.now):
                results.append({"spreadsheetId": spreadsheet_id, "status": "skipped", "reason": "Not due yet"})
                continue
            results.append(sync_config(ctx, config))
        except Exception as exc:
            db.rollback()
            logger.exception("Sheet sync failed for config=%s (%s)", config_id, spreadsheet_id)
            try:
                _log_failure(ctx, company_id, spreadsheet_id, sheet_name, str(exc))
            except Exception:
                db.rollback()
                logger.exception("Could not record sync failure for config=%s", config_id)
            results.append({"spreadsheetId": spreadsheet_id, "status": "error", "error": str(exc)})

    return {
        "synced": sum(1 for r in results if r["status"] == "success"),
        "results": results,
    }
