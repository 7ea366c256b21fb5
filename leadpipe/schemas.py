"""
Pydantic schemas for records entering the cron jobs and for the cron report.

Rows are read through SQLAlchemy and validated here before any job logic
touches them, so malformed JSON columns (column mappings, queued lead data)
fail with a `RecordDecodeError` instead of surfacing as KeyErrors deep in a job.

Schemas:
- PlanRecord / SubscriptionRecord: billing rows used by expiry and revenue jobs.
- ColumnMapping / SheetSyncConfigRecord / SheetLead: Google Sheets import.
- LeadData / QueuedLeadNotification: lead digest queue rows.
- TaskReport / DailyReport: response body of the cron endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordDecodeError(ValueError):
    """A database row did not match the schema the job expects."""

    def __init__(self, model: str, row_id: Any, detail: str):
        self.model = model
        self.row_id = row_id
        super().__init__(f"Invalid {model} row (id={row_id}): {detail}")


def decode(model: Type[ModelT], row: Any) -> ModelT:
    """Validate an ORM row (or dict) into `model`, raising RecordDecodeError on mismatch."""
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        row_id = row.get("id") if isinstance(row, dict) else getattr(row, "id", None)
        raise RecordDecodeError(model.__name__, row_id, str(exc)) from exc


# --- Billing ---------------------------------------------------------------

class PlanRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    price_monthly: float
    price_yearly: Optional[float] = None


class SubscriptionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int
    status: str
    billing_cycle: str
    current_period_end: datetime
    grace_period_end: Optional[datetime] = None
    plan: PlanRecord


# --- Google Sheets ---------------------------------------------------------

class CustomFieldMapping(BaseModel):
    label: str   # label stored on the lead
    column: str  # sheet header


class ColumnMapping(BaseModel):
    """Sheet header names for each lead field; stored as JSON on the config."""
    model_config = ConfigDict(populate_by_name=True)
    name: str
    phone: str
    email: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    custom_fields: List[CustomFieldMapping] = Field(default_factory=list, alias="customFields")


class SheetSyncConfigRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int
    landing_page_id: Optional[int] = None
    spreadsheet_id: str
    sheet_name: Optional[str] = None
    column_mapping: ColumnMapping
    sync_interval_minutes: Optional[int] = None
    last_synced_at: Optional[datetime] = None


class SheetLead(BaseModel):
    """One data row of a sheet after column mapping."""
    name: str
    phone: str
    email: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[str] = None
    custom_fields: List[Dict[str, str]] = Field(default_factory=list)


# --- Lead digest -----------------------------------------------------------

class LeadData(BaseModel):
    """Snapshot of the lead captured when the notification was queued."""
    model_config = ConfigDict(extra="ignore")
    name: str
    phone: str
    email: Optional[str] = None
    landing_page_title: Optional[str] = None
    device_type: Optional[str] = None
    created_at: datetime


class QueuedLeadNotification(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int
    lead_id: Optional[int] = None
    recipient_emails: List[str] = Field(default_factory=list)
    lead_data: LeadData
    retry_count: int = 0
    created_at: datetime


# --- Cron report -----------------------------------------------------------

class TaskReport(BaseModel):
    """One entry of `tasksExecuted`; job-specific fields ride along as extras."""
    model_config = ConfigDict(extra="allow")
    task: str
    status: str  # success | partial | error
    error: Optional[str] = None


class DailyReport(BaseModel):
    """Body of GET /api/cron/daily-tasks."""
    timestamp: str
    tasksExecuted: List[TaskReport]
