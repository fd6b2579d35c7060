"""
Tests for the storage backends.

The Google Sheets backend runs against an in-process fake of the
worksheet API; no network calls are made.
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from cycletrack.models.audit import AuditEventBuilder
from cycletrack.models.cycle import CycleOverride
from cycletrack.models.records import (
    BudgetTransaction,
    GoalRecord,
    LiabilityRecord,
    ScheduledBill,
)
from cycletrack.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsCycleStorage,
    InMemoryCycleStorage,
    RecordNotFoundError,
    StorageError,
    merge_override,
)
from cycletrack.services.storage.google_sheets import (
    ANNOTATION_COLUMNS,
    AUDIT_COLUMNS,
    LIABILITY_COLUMNS,
    PAYMENT_COLUMNS,
)


def run_async(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FakeWorksheet:
    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update_cell(self, row, col, value):
        target = self.rows[row - 1]
        target.extend([""] * (col - len(target)))
        target[col - 1] = str(value)


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self):
        self.sheets = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]

    def read_rows(self, title, columns):
        sheet = self.get_worksheet(title, columns)
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]

    def get_audit_sheet(self):
        return self.get_worksheet("AuditLog", AUDIT_COLUMNS)


@pytest.fixture
def sheets_env(monkeypatch, tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}")
    monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
    monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "test-sheet")


class TestMergeOverride:
    """Tests for merging a partial override into a stored one."""

    def test_set_fields_win(self):
        stored = CycleOverride(expected_amount=Decimal("1500"), notes="raise")
        merged = merge_override(stored, CycleOverride(minimum_amount=Decimal("200")))

        assert merged.expected_amount == Decimal("1500")
        assert merged.minimum_amount == Decimal("200")
        assert merged.notes == "raise"

    def test_nothing_stored(self):
        update = CycleOverride(expected_date=date(2024, 3, 5))
        assert merge_override(None, update) == update


class TestInMemoryStorage:
    """Tests for the in-memory backend."""

    @pytest.fixture
    def storage(self):
        return InMemoryCycleStorage()

    def test_reads_are_copies(self, storage):
        """Mutating a returned record does not change what is stored."""
        liability = storage.add_liability(LiabilityRecord(title="Loan", start_date=date(2024, 1, 1)))

        loaded = run_async(storage.get_liability(liability.id))
        loaded.cycle_notes[1] = "scribble"

        assert run_async(storage.get_liability(liability.id)).cycle_notes == {}

    def test_note_set_and_cleared(self, storage):
        goal = storage.add_goal(GoalRecord(title="Bike", target_amount=Decimal("600")))

        run_async(storage.update_cycle_note("goal", goal.id, 2, "birthday money"))
        assert run_async(storage.get_goal(goal.id)).cycle_notes == {2: "birthday money"}

        run_async(storage.update_cycle_note("goal", goal.id, 2, None))
        assert run_async(storage.get_goal(goal.id)).cycle_notes == {}

    def test_override_merged(self, storage):
        liability = storage.add_liability(LiabilityRecord(title="Loan", start_date=date(2024, 1, 1)))

        run_async(storage.update_cycle_override("liability", liability.id, 3, CycleOverride(expected_amount=Decimal("10"))))
        run_async(storage.update_cycle_override("liability", liability.id, 3, CycleOverride(minimum_amount=Decimal("5"))))

        stored = run_async(storage.get_liability(liability.id)).cycle_overrides[3]
        assert stored.expected_amount == Decimal("10")
        assert stored.minimum_amount == Decimal("5")

    def test_unknown_record(self, storage):
        with pytest.raises(RecordNotFoundError, match="Budget"):
            run_async(storage.update_cycle_note("budget", uuid4(), 1, "note"))

    def test_unknown_record_type(self, storage):
        with pytest.raises(StorageError, match="Unknown record type"):
            run_async(storage.update_cycle_note("invoice", uuid4(), 1, "note"))

    def test_bill_needs_liability(self, storage):
        with pytest.raises(StorageError):
            storage.add_bill(ScheduledBill(due_date=date(2024, 1, 1)))

    def test_transaction_range_end_is_exclusive(self, storage):
        category_id = uuid4()
        for day in (date(2024, 1, 1), date(2024, 1, 31), date(2024, 2, 1)):
            storage.add_transaction(BudgetTransaction(
                category_id=category_id, amount=Decimal("5"), transaction_date=day,
            ))

        found = run_async(storage.list_budget_transactions(
            category_id, date_from=date(2024, 1, 1), date_to=date(2024, 2, 1),
        ))
        assert [t.transaction_date for t in found] == [date(2024, 1, 1), date(2024, 1, 31)]


class TestGoogleSheetsStorage:
    """Tests for the Google Sheets backend."""

    @pytest.fixture
    def client(self):
        return FakeSheetsClient()

    @pytest.fixture
    def storage(self, sheets_env, client):
        return GoogleSheetsCycleStorage(client)

    @pytest.fixture
    def liability_id(self, client):
        record_id = uuid4()
        sheet = client.get_worksheet("Liabilities", LIABILITY_COLUMNS)
        sheet.append_row([
            str(record_id), "Car loan", "10000", "1000", "monthly", "", "",
            "2024-01-01", "", "1", "", "12",
        ])
        return record_id

    def test_get_liability(self, storage, liability_id):
        liability = run_async(storage.get_liability(liability_id))

        assert liability.title == "Car loan"
        assert liability.current_balance == Decimal("10000")
        assert liability.due_day_of_month == 1
        assert liability.targeted_payoff_date is None
        assert liability.interest_rate_apy == Decimal("12")

    def test_missing_liability(self, storage):
        assert run_async(storage.get_liability(uuid4())) is None

    def test_malformed_payment_rows_are_skipped(self, storage, client, liability_id):
        sheet = client.get_worksheet("LiabilityPayments", PAYMENT_COLUMNS)
        sheet.append_row([str(uuid4()), str(liability_id), "1000", "2024-01-03"])
        sheet.append_row([str(uuid4()), str(liability_id), "lots", "2024-02-03"])
        sheet.append_row([str(uuid4()), str(uuid4()), "50", "2024-01-05"])

        payments = run_async(storage.list_liability_payments(liability_id))

        assert len(payments) == 1
        assert payments[0].amount == Decimal("1000")
        assert payments[0].cycle_number is None

    def test_annotations_upserted(self, storage, client, liability_id):
        """Note and override for one cycle share a single row."""
        run_async(storage.update_cycle_note("liability", liability_id, 2, "Paid early"))
        run_async(storage.update_cycle_override(
            "liability", liability_id, 2, CycleOverride(expected_amount=Decimal("1500")),
        ))

        rows = client.sheets["CycleAnnotations"].rows
        assert rows[0] == ANNOTATION_COLUMNS
        assert len(rows) == 2

        liability = run_async(storage.get_liability(liability_id))
        assert liability.cycle_notes == {2: "Paid early"}
        assert liability.cycle_overrides[2].expected_amount == Decimal("1500")

    def test_annotation_on_missing_record(self, storage):
        with pytest.raises(RecordNotFoundError):
            run_async(storage.update_cycle_note("liability", uuid4(), 1, "note"))

    def test_audit_round_trip(self, sheets_env, client):
        audit = GoogleSheetsAuditStorage(client)
        record_id = uuid4()
        event = AuditEventBuilder.cycle_note_updated("goal", record_id, 4)

        assert run_async(audit.append_event(event)) is True

        events = run_async(audit.get_events_by_entity("goal", record_id))
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].cycle_number == 4
        assert events[0].is_user_action is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
