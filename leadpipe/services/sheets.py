# leadpipe/services/sheets.py
"""
Google Sheets lead import helpers.

- `GoogleSheetsClient` reads cell ranges with a service account (read-only scope).
- `parse_sheet_to_leads` maps a header row + data rows to `SheetLead` records.
- `phone_hash` is the dedup key shared with leads captured on landing pages:
  sha256 over the phone's digits only, so "010-1234-5678" and "01012345678" collide.
"""

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from google.oauth2 import service_account
from googleapiclient.discovery import build

from ..schemas import ColumnMapping, SheetLead

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
DEFAULT_SHEET_NAME = "Sheet1"
# Wide enough for every lead form export we have seen
SYNC_COLUMNS = "A:Z"

_NON_DIGITS = re.compile(r"\D")

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%Y.%m.%d %H:%M:%S",
    "%Y.%m.%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def normalize_phone(phone: str) -> str:
    return _NON_DIGITS.sub("", phone or "")


def phone_hash(phone: str) -> str:
    return hashlib.sha256(normalize_phone(phone).encode("utf-8")).hexdigest()


def sync_range(sheet_name: Optional[str]) -> str:
    return f"{sheet_name or DEFAULT_SHEET_NAME}!{SYNC_COLUMNS}"


def parse_sheet_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Best-effort parse of a sheet date cell into naive UTC; None when unparseable."""
    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        dt = None
        for fmt in _TIMESTAMP_FORMATS:
            try:
                dt = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _column_value(row: Sequence[str], headers: Sequence[str], column: Optional[str]) -> Optional[str]:
    """Cell under the header matching `column` (trimmed, case-insensitive)."""
    if not column:
        return None
    wanted = column.strip().lower()
    for index, header in enumerate(headers):
        if str(header).strip().lower() == wanted:
            if index < len(row) and row[index] is not None:
                return str(row[index]).strip()
            return None
    return None


def parse_sheet_to_leads(rows: List[List[str]], mapping: ColumnMapping) -> List[SheetLead]:
    """
    Map sheet rows to leads. Row 0 is the header row.

    Rows without a name or phone are dropped; custom fields with empty values
    are omitted from the lead.
    """
    if len(rows) < 2:
        return []

    headers = rows[0]
    leads: List[SheetLead] = []
    for row in rows[1:]:
        name = _column_value(row, headers, mapping.name) or ""
        phone = _column_value(row, headers, mapping.phone) or ""
        if not name or not phone:
            continue

        custom = []
        for cf in mapping.custom_fields:
            value = _column_value(row, headers, cf.column)
            if value:
                custom.append({"label": cf.label, "value": value})

        leads.append(SheetLead(
            name=name,
            phone=phone,
            email=_column_value(row, headers, mapping.email) or None,
            source=_column_value(row, headers, mapping.source) or None,
            created_at=_column_value(row, headers, mapping.created_at) or None,
            custom_fields=custom,
        ))
    return leads


class GoogleSheetsClient:
    """Read-only Sheets API v4 client built from a service account JSON string."""

    def __init__(self, service_account_json: str):
        if not service_account_json:
            raise ValueError("GOOGLE_SERVICE_ACCOUNT_KEY is not configured")
        info = json.loads(service_account_json)
        creds = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        self._service = build("sheets", "v4", credentials=creds, cache_discovery=False)

    def fetch_sheet_data(self, spreadsheet_id: str, range_expression: str) -> List[List[str]]:
        response = (
            self._service.spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=range_expression)
            .execute()
        )
        rows = response.get("values", [])
        logger.debug("Fetched %d rows from %s (%s)", len(rows), spreadsheet_id, range_expression)
        return rows
