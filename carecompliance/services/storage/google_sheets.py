"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the shared backend for small providers:
1. Coordinators already maintain staff lists and restrictions in Sheets
2. No database setup required
3. Built-in version history for compliance review

TRADEOFFS:
- Not suitable for large rosters (every read fetches a whole worksheet)
- No transactions (reads within one validation may see different versions)
- Limited query capabilities (we filter in Python)

Each entity lives in its own worksheet with a header row. Rows are read with
get_all_records() and validated through the pydantic models, so a malformed
row fails loudly instead of being silently treated as "no constraint".
"""

import json
from datetime import datetime
from typing import Any, Optional, Type, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from carecompliance.config import get_settings
from carecompliance.config.settings import GoogleSheetsSettings
from carecompliance.models.allocation import (
    Client,
    ClientStaffRestriction,
    StaffBlacklistEntry,
    StaffMember,
    StaffQualification,
    as_utc,
)
from carecompliance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from carecompliance.models.scheduling import (
    BOOKED_ASSIGNMENT_STATUSES,
    CLOSED_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentAssignment,
    AvailabilityWindow,
    BookedAppointment,
    ClientStaffPreference,
    SchedulingConflictRecord,
    UnavailabilityPeriod,
)
from carecompliance.services.storage.interface import (
    AllocationRepositoryInterface,
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    StorageError,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# Column mappings for the SchedulingConflicts sheet
CONFLICT_COLUMNS = [
    "appointment_id",
    "client_id",
    "client_name",
    "staff_id",
    "staff_name",
    "conflict_type",
    "severity",
    "title",
    "description",
    "conflict_details_json",
    "conflict_date",
    "detected_by_id",
    "detected_by_name",
    "detected_by_system",
    "status",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials. Read-only scope is enough for
        the rule sheets, but conflicts and audit rows are appended.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: Optional[list[str]] = None,
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """
        Get a worksheet by title.

        When columns are given and the sheet is missing, it is created with
        that header row. Rule sheets are never auto-created: a missing rule
        sheet is a configuration problem.
        """
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            if columns is None:
                raise NotFoundError(f"Worksheet not found: {title}")
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            return sheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(NotFoundError),
        reraise=True,
    )
    def get_records(self, title: str) -> list[dict[str, Any]]:
        """All data rows of a worksheet as header-keyed dicts of strings."""
        sheet = self.get_worksheet(title)
        return sheet.get_all_records(numericise_ignore=["all"])


def _row_to_model(model: Type[ModelT], record: dict[str, Any]) -> ModelT:
    """
    Validate a sheet record into a model.

    Blank cells are dropped so model defaults apply. Booleans stored as
    "yes"/"no" are accepted by pydantic's bool parsing.
    """
    cleaned = {key: value for key, value in record.items() if value != ""}
    return model.model_validate(cleaned)


class GoogleSheetsAllocationRepository(AllocationRepositoryInterface):
    """
    Google Sheets implementation of the allocation repository.

    Every read fetches the whole worksheet and filters in Python.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _load(self, model: Type[ModelT], sheet_name: str) -> list[ModelT]:
        try:
            records = self._client.get_records(sheet_name)
            return [_row_to_model(model, record) for record in records]
        except StorageError:
            raise
        except ValidationError as e:
            raise StorageError(f"Malformed row in {sheet_name}: {e}")
        except Exception as e:
            raise StorageError(f"Failed to read {sheet_name}: {e}")

    @property
    def _sheets(self) -> GoogleSheetsSettings:
        return self._client.settings

    async def get_active_restrictions(
        self,
        client_id: str,
        staff_id: str,
    ) -> list[ClientStaffRestriction]:
        rows = self._load(ClientStaffRestriction, self._sheets.restrictions_sheet_name)
        return [
            r for r in rows
            if r.client_id == client_id and r.staff_id == staff_id and r.is_active
        ]

    async def get_client(self, client_id: str) -> Optional[Client]:
        for client in self._load(Client, self._sheets.clients_sheet_name):
            if client.id == client_id:
                return client
        return None

    async def get_active_blacklist_entries(
        self,
        staff_id: str,
    ) -> list[StaffBlacklistEntry]:
        rows = self._load(StaffBlacklistEntry, self._sheets.blacklist_sheet_name)
        return [e for e in rows if e.staff_id == staff_id and e.is_active]

    async def get_qualifications(
        self,
        staff_id: str,
    ) -> list[StaffQualification]:
        rows = self._load(StaffQualification, self._sheets.qualifications_sheet_name)
        return [q for q in rows if q.staff_id == staff_id]

    async def list_active_staff(self) -> list[StaffMember]:
        rows = self._load(StaffMember, self._sheets.staff_sheet_name)
        return [s for s in rows if s.is_active]

    async def get_staff_by_ids(self, staff_ids: list[str]) -> list[StaffMember]:
        wanted = set(staff_ids)
        rows = self._load(StaffMember, self._sheets.staff_sheet_name)
        return [s for s in rows if s.id in wanted]

    async def get_availability_windows(
        self,
        staff_id: str,
        day_of_week: int,
    ) -> list[AvailabilityWindow]:
        rows = self._load(AvailabilityWindow, self._sheets.availability_sheet_name)
        return [
            w for w in rows
            if w.staff_id == staff_id and w.day_of_week == day_of_week and w.is_active
        ]

    async def get_unavailability_periods(
        self,
        staff_id: str,
        start: datetime,
        end: datetime,
    ) -> list[UnavailabilityPeriod]:
        start, end = as_utc(start), as_utc(end)
        rows = self._load(UnavailabilityPeriod, self._sheets.unavailability_sheet_name)
        return [
            p for p in rows
            if p.staff_id == staff_id
            and p.status == "approved"
            and p.start_date <= end
            and p.end_date >= start
        ]

    def _live_bookings(self) -> list[BookedAppointment]:
        """Pending/accepted assignments joined with their open appointments."""
        appointments = {
            a.id: a
            for a in self._load(Appointment, self._sheets.appointments_sheet_name)
        }
        assignments = self._load(AppointmentAssignment, self._sheets.assignments_sheet_name)

        booked = []
        for assignment in assignments:
            if assignment.status not in BOOKED_ASSIGNMENT_STATUSES:
                continue
            appointment = appointments.get(assignment.appointment_id)
            if appointment is None or appointment.status in CLOSED_APPOINTMENT_STATUSES:
                continue
            booked.append(BookedAppointment(assignment=assignment, appointment=appointment))
        return booked

    async def get_overlapping_assignments(
        self,
        staff_id: str,
        exclude_appointment_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BookedAppointment]:
        start, end = as_utc(start), as_utc(end)
        return [
            b for b in self._live_bookings()
            if b.assignment.staff_id == staff_id
            and b.appointment.id != exclude_appointment_id
            and b.appointment.scheduled_start <= end
            and b.appointment.scheduled_end >= start
        ]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        for appointment in self._load(Appointment, self._sheets.appointments_sheet_name):
            if appointment.id == appointment_id:
                return appointment
        return None

    async def get_live_assignments(
        self,
        appointment_id: str,
    ) -> list[AppointmentAssignment]:
        rows = self._load(AppointmentAssignment, self._sheets.assignments_sheet_name)
        return [
            a for a in rows
            if a.appointment_id == appointment_id and a.status in BOOKED_ASSIGNMENT_STATUSES
        ]

    async def get_future_staff_bookings(
        self,
        staff_id: str,
        after: datetime,
    ) -> list[BookedAppointment]:
        after = as_utc(after)
        return [
            b for b in self._live_bookings()
            if b.assignment.staff_id == staff_id and b.appointment.scheduled_start >= after
        ]

    async def get_future_client_bookings(
        self,
        client_id: str,
        after: datetime,
    ) -> list[BookedAppointment]:
        after = as_utc(after)
        return [
            b for b in self._live_bookings()
            if b.appointment.client_id == client_id and b.appointment.scheduled_start >= after
        ]

    async def get_client_preferences(
        self,
        client_id: str,
    ) -> list[ClientStaffPreference]:
        rows = self._load(ClientStaffPreference, self._sheets.preferences_sheet_name)
        return [p for p in rows if p.client_id == client_id and p.is_active]

    def _conflict_to_row(self, record: SchedulingConflictRecord) -> list:
        """Convert a SchedulingConflictRecord to a spreadsheet row."""
        return [
            record.appointment_id,
            record.client_id,
            record.client_name,
            record.staff_id,
            record.staff_name,
            record.conflict_type.value,
            record.severity.value,
            record.title,
            record.description,
            json.dumps(record.conflict_details, default=str),
            record.conflict_date.isoformat(),
            record.detected_by_id or "",
            record.detected_by_name or "",
            "yes" if record.detected_by_system else "no",
            record.status,
        ]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_scheduling_conflict(
        self,
        record: SchedulingConflictRecord,
    ) -> bool:
        """Append a scheduling conflict row."""
        try:
            sheet = self._client.get_worksheet(
                self._sheets.conflicts_sheet_name,
                columns=CONFLICT_COLUMNS,
            )
            sheet.append_row(self._conflict_to_row(record), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save scheduling conflict: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _get_sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            columns=AUDIT_COLUMNS,
            rows=5000,
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        all_rows = self._get_sheet().get_all_values()[1:]
        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, IndexError) as e:
                logger.warning("audit_row_skipped", row_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event.

        Never raises: audit logging must not break an allocation decision.
        """
        try:
            self._get_sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            logger.error(
                "audit_sheet_append_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
