"""
Shared plumbing for the cron jobs.

Every job is a plain function `job(ctx) -> dict` that returns its
task-specific report fields. Collaborators arrive through `JobContext`
(built per invocation), never through module globals, so tests can hand
in a SQLite session and fake email / sheets clients.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from ..config import Settings
from ..services.email import SendResult


class JobError(RuntimeError):
    """A job could not complete (e.g. its driving query failed)."""


class EmailSender(Protocol):
    def send(self, from_: str, to: List[str], subject: str, html: str, text: str) -> SendResult: ...


class SheetSource(Protocol):
    def fetch_sheet_data(self, spreadsheet_id: str, range_expression: str) -> List[List[str]]: ...


@dataclass
class JobContext:
    db: Session
    settings: Settings
    now: datetime
    # Built lazily: a run without queued digests or sync configs never needs credentials
    email_factory: Optional[Callable[[], EmailSender]] = None
    sheets_factory: Optional[Callable[[], SheetSource]] = None
    _email: Optional[EmailSender] = field(default=None, repr=False)
    _sheets: Optional[SheetSource] = field(default=None, repr=False)

    @property
    def email(self) -> EmailSender:
        if self._email is None:
            if self.email_factory is None:
                raise JobError("No email sender configured")
            self._email = self.email_factory()
        return self._email

    @property
    def sheets(self) -> SheetSource:
        if self._sheets is None:
            if self.sheets_factory is None:
                raise JobError("No spreadsheet source configured")
            self._sheets = self.sheets_factory()
        return self._sheets


Job = Callable[[JobContext], Dict[str, Any]]
