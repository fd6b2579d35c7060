"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. Non-technical users can view and edit their records directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (notes and overrides are single-row writes)
- Limited query capabilities (we filter in Python)

Each record kind lives in its own worksheet. Cycle notes and overrides
live in one annotations worksheet keyed by (record type, record id,
cycle number) and are merged into records as they are read.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from cycletrack.config import get_settings
from cycletrack.models.audit import AuditEvent, AuditEventType, AuditSeverity
from cycletrack.models.cycle import CycleOverride
from cycletrack.models.records import (
    BudgetRecord,
    BudgetTransaction,
    GoalRecord,
    GoalTransfer,
    LiabilityPayment,
    LiabilityRecord,
    ScheduledBill,
)
from cycletrack.services.storage.interface import (
    ANNOTATED_ENTITY_TYPES,
    AuditStorageInterface,
    ConnectionError,
    CycleStorageInterface,
    RecordNotFoundError,
    StorageError,
    merge_override,
)

logger = structlog.get_logger(__name__)


# Column layouts, one per worksheet
LIABILITY_COLUMNS = [
    "id",
    "title",
    "current_balance",
    "periodical_payment",
    "periodical_frequency",
    "custom_frequency_unit",
    "custom_frequency_interval",
    "start_date",
    "targeted_payoff_date",
    "due_day_of_month",
    "next_due_date",
    "interest_rate_apy",
]

PAYMENT_COLUMNS = [
    "id",
    "liability_id",
    "amount",
    "payment_date",
    "principal_component",
    "interest_component",
    "cycle_number",
    "bill_id",
    "description",
]

BILL_COLUMNS = [
    "id",
    "liability_id",
    "title",
    "due_date",
    "amount",
    "total_amount",
    "status",
    "cycle_number",
    "minimum_amount",
]

BUDGET_COLUMNS = [
    "id",
    "name",
    "category_id",
    "target_amount",
    "recurrence",
    "start_date",
    "end_date",
]

TRANSACTION_COLUMNS = [
    "id",
    "category_id",
    "amount",
    "transaction_date",
    "description",
]

GOAL_COLUMNS = [
    "id",
    "title",
    "target_amount",
    "current_amount",
    "target_date",
    "created_at",
]

TRANSFER_COLUMNS = [
    "id",
    "goal_id",
    "amount",
    "transfer_date",
    "is_withdrawal",
    "cycle_number",
    "description",
]

ANNOTATION_COLUMNS = [
    "entity_type",
    "record_id",
    "cycle_number",
    "note",
    "override_json",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "cycle_number",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_getter(row: list) -> Callable[[int], str]:
    """Column accessor that tolerates short rows and blank cells."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _opt_date(value: str) -> Optional[date]:
    return date.fromisoformat(value[:10]) if value else None


def _opt_decimal(value: str) -> Optional[Decimal]:
    return Decimal(value) if value else None


def _opt_int(value: str) -> Optional[int]:
    return int(value) if value else None


def _opt_uuid(value: str) -> Optional[UUID]:
    return UUID(value) if value else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
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
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def read_rows(self, title: str, columns: list[str]) -> list[list]:
        """All non-empty data rows of a worksheet (header excluded)."""
        sheet = self.get_worksheet(title, columns)
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsCycleStorage(CycleStorageInterface):
    """
    Google Sheets implementation of cycle storage.

    Records are stored one per row. Rows that fail to parse are skipped
    with a warning so one bad edit in the sheet does not hide the rest.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._settings = get_settings().google_sheets

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _row_to_liability(self, row: list) -> LiabilityRecord:
        safe_get = _safe_getter(row)
        return LiabilityRecord(
            id=UUID(safe_get(0)),
            title=safe_get(1),
            current_balance=Decimal(safe_get(2, "0")),
            periodical_payment=Decimal(safe_get(3, "0")),
            periodical_frequency=safe_get(4) or None,
            custom_frequency_unit=safe_get(5) or None,
            custom_frequency_interval=int(safe_get(6, "1")),
            start_date=date.fromisoformat(safe_get(7)[:10]),
            targeted_payoff_date=_opt_date(safe_get(8)),
            due_day_of_month=_opt_int(safe_get(9)),
            next_due_date=_opt_date(safe_get(10)),
            interest_rate_apy=Decimal(safe_get(11, "0")),
        )

    def _row_to_payment(self, row: list) -> LiabilityPayment:
        safe_get = _safe_getter(row)
        return LiabilityPayment(
            id=UUID(safe_get(0)),
            liability_id=UUID(safe_get(1)),
            amount=Decimal(safe_get(2, "0")),
            payment_date=date.fromisoformat(safe_get(3)[:10]),
            principal_component=_opt_decimal(safe_get(4)),
            interest_component=_opt_decimal(safe_get(5)),
            cycle_number=_opt_int(safe_get(6)),
            bill_id=_opt_uuid(safe_get(7)),
            description=safe_get(8) or None,
        )

    def _row_to_bill(self, row: list) -> ScheduledBill:
        safe_get = _safe_getter(row)
        return ScheduledBill(
            id=UUID(safe_get(0)),
            liability_id=_opt_uuid(safe_get(1)),
            title=safe_get(2) or None,
            due_date=date.fromisoformat(safe_get(3)[:10]),
            amount=_opt_decimal(safe_get(4)),
            total_amount=_opt_decimal(safe_get(5)),
            status=safe_get(6, "upcoming"),
            cycle_number=_opt_int(safe_get(7)),
            minimum_amount=_opt_decimal(safe_get(8)),
        )

    def _row_to_budget(self, row: list) -> BudgetRecord:
        safe_get = _safe_getter(row)
        return BudgetRecord(
            id=UUID(safe_get(0)),
            name=safe_get(1),
            category_id=_opt_uuid(safe_get(2)),
            target_amount=Decimal(safe_get(3, "0")),
            recurrence=safe_get(4) or None,
            start_date=date.fromisoformat(safe_get(5)[:10]),
            end_date=_opt_date(safe_get(6)),
        )

    def _row_to_transaction(self, row: list) -> BudgetTransaction:
        safe_get = _safe_getter(row)
        return BudgetTransaction(
            id=UUID(safe_get(0)),
            category_id=_opt_uuid(safe_get(1)),
            amount=Decimal(safe_get(2, "0")),
            transaction_date=date.fromisoformat(safe_get(3)[:10]),
            description=safe_get(4) or None,
        )

    def _row_to_goal(self, row: list) -> GoalRecord:
        safe_get = _safe_getter(row)
        return GoalRecord(
            id=UUID(safe_get(0)),
            title=safe_get(1),
            target_amount=Decimal(safe_get(2, "0")),
            current_amount=Decimal(safe_get(3, "0")),
            target_date=_opt_date(safe_get(4)),
            created_at=datetime.fromisoformat(safe_get(5)),
        )

    def _row_to_transfer(self, row: list) -> GoalTransfer:
        safe_get = _safe_getter(row)
        return GoalTransfer(
            id=UUID(safe_get(0)),
            goal_id=UUID(safe_get(1)),
            amount=Decimal(safe_get(2, "0")),
            transfer_date=date.fromisoformat(safe_get(3)[:10]),
            is_withdrawal=safe_get(4).lower() == "true",
            cycle_number=_opt_int(safe_get(5)),
            description=safe_get(6) or None,
        )

    def _parse_rows(self, rows: list[list], parse, kind: str) -> list:
        parsed = []
        for row in rows:
            try:
                parsed.append(parse(row))
            except (ValueError, ArithmeticError) as e:
                logger.warning("malformed_row_skipped", kind=kind, row_id=row[0], error=str(e))
        return parsed

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def _annotation_rows(self) -> list[list]:
        return self._client.read_rows(
            self._settings.annotations_sheet_name, ANNOTATION_COLUMNS
        )

    def _annotations_for(
        self,
        entity_type: str,
        record_id: UUID,
    ) -> tuple[dict[int, str], dict[int, CycleOverride]]:
        notes: dict[int, str] = {}
        overrides: dict[int, CycleOverride] = {}

        for row in self._annotation_rows():
            safe_get = _safe_getter(row)
            if safe_get(0) != entity_type or safe_get(1) != str(record_id):
                continue
            cycle_number = int(safe_get(2))
            if safe_get(3):
                notes[cycle_number] = safe_get(3)
            if safe_get(4):
                overrides[cycle_number] = CycleOverride.model_validate_json(safe_get(4))

        return notes, overrides

    def _with_annotations(self, record, entity_type: str):
        notes, overrides = self._annotations_for(entity_type, record.id)
        return record.model_copy(
            update={"cycle_notes": notes, "cycle_overrides": overrides}
        )

    def _write_annotation(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        note: Optional[str] = None,
        override: Optional[CycleOverride] = None,
        *,
        replace_note: bool = False,
        replace_override: bool = False,
    ) -> None:
        """Upsert the annotation row for one cycle."""
        sheet = self._client.get_worksheet(
            self._settings.annotations_sheet_name, ANNOTATION_COLUMNS
        )
        all_rows = sheet.get_all_values()
        key = [entity_type, str(record_id), str(cycle_number)]

        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row[:3] != key:
                continue
            safe_get = _safe_getter(row)
            new_note = (note or "") if replace_note else safe_get(3)
            new_override = (
                override.model_dump_json(exclude_none=True) if override and not override.is_empty else ""
            ) if replace_override else safe_get(4)
            new_row = key + [new_note, new_override, datetime.utcnow().isoformat()]
            for col_idx, value in enumerate(new_row, start=1):
                sheet.update_cell(idx, col_idx, value)
            return

        sheet.append_row(
            key + [
                note or "",
                override.model_dump_json(exclude_none=True) if override and not override.is_empty else "",
                datetime.utcnow().isoformat(),
            ],
            value_input_option="RAW",
        )

    # ------------------------------------------------------------------
    # Liabilities
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get_liability(self, liability_id: UUID) -> Optional[LiabilityRecord]:
        """Retrieve a liability with its notes and overrides."""
        try:
            rows = self._client.read_rows(
                self._settings.liabilities_sheet_name, LIABILITY_COLUMNS
            )
            for row in rows:
                if row[0] == str(liability_id):
                    return self._with_annotations(self._row_to_liability(row), "liability")
            return None
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get liability: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_liability_payments(
        self,
        liability_id: UUID,
    ) -> list[LiabilityPayment]:
        try:
            rows = [
                row for row in self._client.read_rows(
                    self._settings.payments_sheet_name, PAYMENT_COLUMNS
                )
                if len(row) > 1 and row[1] == str(liability_id)
            ]
            payments = self._parse_rows(rows, self._row_to_payment, "payment")
            return sorted(payments, key=lambda p: p.payment_date)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list payments: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_liability_bills(self, liability_id: UUID) -> list[ScheduledBill]:
        try:
            rows = [
                row for row in self._client.read_rows(
                    self._settings.bills_sheet_name, BILL_COLUMNS
                )
                if len(row) > 1 and row[1] == str(liability_id)
            ]
            bills = self._parse_rows(rows, self._row_to_bill, "bill")
            return sorted(bills, key=lambda b: b.due_date)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list bills: {e}")

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get_budget(self, budget_id: UUID) -> Optional[BudgetRecord]:
        try:
            rows = self._client.read_rows(
                self._settings.budgets_sheet_name, BUDGET_COLUMNS
            )
            for row in rows:
                if row[0] == str(budget_id):
                    return self._with_annotations(self._row_to_budget(row), "budget")
            return None
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_budget_transactions(
        self,
        category_id: Optional[UUID],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[BudgetTransaction]:
        try:
            rows = self._client.read_rows(
                self._settings.transactions_sheet_name, TRANSACTION_COLUMNS
            )
            transactions = [
                t for t in self._parse_rows(rows, self._row_to_transaction, "transaction")
                if (category_id is None or t.category_id == category_id)
                and (date_from is None or t.transaction_date >= date_from)
                and (date_to is None or t.transaction_date < date_to)
            ]
            return sorted(transactions, key=lambda t: t.transaction_date)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get_goal(self, goal_id: UUID) -> Optional[GoalRecord]:
        try:
            rows = self._client.read_rows(
                self._settings.goals_sheet_name, GOAL_COLUMNS
            )
            for row in rows:
                if row[0] == str(goal_id):
                    return self._with_annotations(self._row_to_goal(row), "goal")
            return None
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get goal: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_goal_transfers(self, goal_id: UUID) -> list[GoalTransfer]:
        try:
            rows = [
                row for row in self._client.read_rows(
                    self._settings.transfers_sheet_name, TRANSFER_COLUMNS
                )
                if len(row) > 1 and row[1] == str(goal_id)
            ]
            transfers = self._parse_rows(rows, self._row_to_transfer, "transfer")
            return sorted(transfers, key=lambda t: t.transfer_date)
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list transfers: {e}")

    # ------------------------------------------------------------------
    # Annotation writes
    # ------------------------------------------------------------------

    async def _ensure_record(self, entity_type: str, record_id: UUID) -> None:
        if entity_type not in ANNOTATED_ENTITY_TYPES:
            raise StorageError(f"Unknown record type: {entity_type}")
        getters = {
            "liability": self.get_liability,
            "budget": self.get_budget,
            "goal": self.get_goal,
        }
        if await getters[entity_type](record_id) is None:
            raise RecordNotFoundError(entity_type, record_id)

    async def update_cycle_note(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        note: Optional[str],
    ) -> bool:
        """Persist the note for one cycle."""
        await self._ensure_record(entity_type, record_id)
        try:
            self._write_annotation(
                entity_type, record_id, cycle_number, note=note, replace_note=True
            )
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update cycle note: {e}")

    async def update_cycle_override(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        override: CycleOverride,
    ) -> bool:
        """Merge and persist the override for one cycle."""
        await self._ensure_record(entity_type, record_id)
        try:
            _, overrides = self._annotations_for(entity_type, record_id)
            merged = merge_override(overrides.get(cycle_number), override)
            self._write_annotation(
                entity_type, record_id, cycle_number, override=merged, replace_override=True
            )
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update cycle override: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=_opt_uuid(safe_get(5)),
            cycle_number=_opt_int(safe_get(6)),
            correlation_id=_opt_uuid(safe_get(7)),
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, json.JSONDecodeError):
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by record."""
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._all_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
