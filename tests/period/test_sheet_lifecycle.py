"""
Tests for the ledger sheet lifecycle.

Covers:
- Opening: one OPEN sheet per (premise, sheet type), no overlapping periods
- Closing: per-category balances persisted, CLOSED is terminal
- Carry-over: closing balances of the prior sheet open the next one
- Events dated inside a CLOSED sheet are a conflict
"""

from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from contralor_kernel.domain.event_types import EventType, SheetStatus
from contralor_kernel.exceptions import (
    ImmutabilityViolationError,
    SheetAlreadyClosedError,
    SheetAlreadyOpenError,
    SheetNotFoundError,
    SheetPeriodOverlapError,
)
from contralor_kernel.models.balance import CategoryBalance
from contralor_kernel.models.ledger import LedgerSheet
from tests.conftest import REGISTRATION_NUMBER, SHEET_END, SHEET_START

PRIOR_START = date(2023, 7, 1)
PRIOR_END = date(2024, 6, 30)


@pytest.fixture
def prior_sheet(orchestrator, premise_id, firm_id, test_actor_id):
    """OPEN bovine sheet for the DICOSE year 2023/24."""
    return orchestrator.open_sheet(
        premise_id, firm_id, "BOVINO", PRIOR_START, PRIOR_END, REGISTRATION_NUMBER, test_actor_id
    )


def open_current(orchestrator, premise_id, firm_id, actor_id):
    return orchestrator.open_sheet(
        premise_id, firm_id, "BOVINO", SHEET_START, SHEET_END, REGISTRATION_NUMBER, actor_id
    )


def fail_audit(*args, **kwargs):
    raise RuntimeError("audit store unavailable")


class TestOpenSheet:
    def test_opens_sheet_of_species_type(self, open_sheet, premise_id):
        assert open_sheet.status == SheetStatus.OPEN
        assert open_sheet.sheet_type == "A"
        assert open_sheet.premise_id == premise_id
        assert open_sheet.is_open

    def test_second_open_sheet_of_same_type_is_rejected(self, orchestrator, open_sheet, premise_id, firm_id, test_actor_id):
        with pytest.raises(SheetAlreadyOpenError) as exc_info:
            orchestrator.open_sheet(
                premise_id, firm_id, "BOVINO", date(2025, 7, 1), date(2026, 6, 30), REGISTRATION_NUMBER, test_actor_id
            )

        assert exc_info.value.existing_sheet_id == str(open_sheet.id)

    def test_other_species_has_its_own_sheet(self, orchestrator, open_sheet, premise_id, firm_id, test_actor_id):
        ovino = orchestrator.open_sheet(
            premise_id, firm_id, "OVINO", SHEET_START, SHEET_END, REGISTRATION_NUMBER, test_actor_id
        )

        assert ovino.sheet_type == "B"

    def test_unsupported_species(self, orchestrator, premise_id, firm_id, test_actor_id):
        with pytest.raises(ValueError):
            orchestrator.open_sheet(
                premise_id, firm_id, "EQUINO", SHEET_START, SHEET_END, REGISTRATION_NUMBER, test_actor_id
            )

    def test_inverted_period(self, orchestrator, premise_id, firm_id, test_actor_id):
        with pytest.raises(ValueError):
            orchestrator.open_sheet(
                premise_id, firm_id, "BOVINO", SHEET_END, SHEET_START, REGISTRATION_NUMBER, test_actor_id
            )

    def test_overlap_with_closed_sheet(self, orchestrator, prior_sheet, premise_id, firm_id, test_actor_id):
        orchestrator.close_sheet(prior_sheet.id, test_actor_id)

        with pytest.raises(SheetPeriodOverlapError):
            orchestrator.open_sheet(
                premise_id, firm_id, "BOVINO", date(2024, 6, 1), date(2025, 5, 31), REGISTRATION_NUMBER, test_actor_id
            )

    def test_second_open_row_violates_unique_index(self, session, open_sheet, premise_id, firm_id, test_actor_id):
        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(
                    LedgerSheet(
                        premise_id=premise_id,
                        firm_id=firm_id,
                        sheet_type="A",
                        period_start=date(2025, 7, 1),
                        period_end=date(2026, 6, 30),
                        registration_number=REGISTRATION_NUMBER,
                        status="OPEN",
                        created_by_id=test_actor_id,
                    )
                )
                session.flush()

    def test_lost_open_race_is_already_open(
        self, session, monkeypatch, orchestrator, open_sheet, premise_id, firm_id, test_actor_id, captured_logs
    ):
        real_find = orchestrator.sheets.find_open_sheet
        calls = []

        def stale_find(*args, **kwargs):
            calls.append(args)
            # The first lookup runs before the competing open is visible
            return None if len(calls) == 1 else real_find(*args, **kwargs)

        monkeypatch.setattr(orchestrator.sheets, "find_open_sheet", stale_find)

        with pytest.raises(SheetAlreadyOpenError) as exc_info:
            orchestrator.open_sheet(
                premise_id, firm_id, "BOVINO", date(2025, 7, 1), date(2026, 6, 30), REGISTRATION_NUMBER, test_actor_id
            )

        assert exc_info.value.existing_sheet_id == str(open_sheet.id)
        assert session.execute(select(func.count()).select_from(LedgerSheet)).scalar_one() == 1
        assert any(r["message"] == "sheet_open_race_lost" for r in captured_logs())

    def test_closed_sheet_leaves_room_for_next_open(self, orchestrator, open_sheet, premise_id, firm_id, test_actor_id):
        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        following = orchestrator.open_sheet(
            premise_id, firm_id, "BOVINO", date(2025, 7, 1), date(2026, 6, 30), REGISTRATION_NUMBER, test_actor_id
        )

        assert following.is_open


class TestCloseSheet:
    def test_close_persists_balances(self, orchestrator, open_sheet, categories, approve_event, ledger_selector, test_actor_id):
        approve_event(EventType.BIRTH, qty_heads=6)
        approve_event(EventType.DEATH, qty_heads=2)

        balances = orchestrator.close_sheet(open_sheet.id, test_actor_id)

        assert [(b.category_id, b.final_heads) for b in balances] == [(categories["NOVILLOS"].id, 4)]
        persisted = ledger_selector.get_closing_balances(open_sheet.id)
        assert [(b.category_id, b.initial_heads, b.total_in_heads, b.total_out_heads, b.final_heads) for b in persisted] == [
            (categories["NOVILLOS"].id, 0, 6, 2, 4)
        ]

    def test_sheet_becomes_closed(self, session, orchestrator, open_sheet, test_actor_id):
        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        sheet = session.get(LedgerSheet, open_sheet.id)
        assert sheet.status == "CLOSED"
        assert sheet.closed_by_id == test_actor_id
        assert sheet.closed_at is not None

    def test_second_close_raises(self, orchestrator, open_sheet, test_actor_id):
        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        with pytest.raises(SheetAlreadyClosedError):
            orchestrator.close_sheet(open_sheet.id, test_actor_id)

    def test_second_close_writes_nothing(self, orchestrator, open_sheet, approve_event, ledger_selector, test_actor_id):
        approve_event(EventType.BIRTH, qty_heads=6)
        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        with pytest.raises(SheetAlreadyClosedError):
            orchestrator.close_sheet(open_sheet.id, test_actor_id)

        assert len(ledger_selector.get_closing_balances(open_sheet.id)) == 1

    def test_unknown_sheet(self, orchestrator, test_actor_id):
        from uuid import uuid4

        with pytest.raises(SheetNotFoundError):
            orchestrator.close_sheet(uuid4(), test_actor_id)

    def test_closed_sheet_is_frozen(self, session, orchestrator, open_sheet, test_actor_id):
        orchestrator.close_sheet(open_sheet.id, test_actor_id)
        sheet = session.get(LedgerSheet, open_sheet.id)
        sheet.registration_number = "000-000-000"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_close_is_logged(self, orchestrator, open_sheet, approve_event, captured_logs, test_actor_id):
        approve_event(EventType.BIRTH, qty_heads=6)

        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        closed = [r for r in captured_logs() if r["message"] == "sheet_closed"]
        assert closed[0]["total_heads"] == 6
        assert closed[0]["category_count"] == 1

    def test_approval_after_close_is_a_conflict(self, orchestrator, open_sheet, approve_event, test_actor_id):
        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        result = approve_event(EventType.BIRTH, qty_heads=1)

        assert result.is_blocked
        assert result.error_codes == ("SHEET_CLOSED",)

    def test_failed_close_leaves_sheet_open(self, session, monkeypatch, orchestrator, open_sheet, approve_event, test_actor_id):
        approve_event(EventType.BIRTH, qty_heads=6)

        monkeypatch.setattr(orchestrator.auditor, "record_sheet_closed", fail_audit)

        with pytest.raises(RuntimeError, match="audit store unavailable"):
            orchestrator.close_sheet(open_sheet.id, test_actor_id)

        status = session.execute(
            select(LedgerSheet.status).where(LedgerSheet.id == open_sheet.id)
        ).scalar_one()
        assert status == "OPEN"
        assert session.execute(select(func.count()).select_from(CategoryBalance)).scalar_one() == 0

    def test_close_succeeds_after_failed_attempt(self, monkeypatch, orchestrator, open_sheet, approve_event, ledger_selector, test_actor_id):
        approve_event(EventType.BIRTH, qty_heads=6)
        with monkeypatch.context() as patch:
            patch.setattr(orchestrator.auditor, "record_sheet_closed", fail_audit)
            with pytest.raises(RuntimeError):
                orchestrator.close_sheet(open_sheet.id, test_actor_id)

        orchestrator.close_sheet(open_sheet.id, test_actor_id)

        assert [b.final_heads for b in ledger_selector.get_closing_balances(open_sheet.id)] == [6]


class TestCarryOver:
    """Closing balances of one DICOSE year open the next."""

    @pytest.fixture
    def closed_prior(self, orchestrator, prior_sheet, categories, approve_event, test_actor_id):
        # NOVILLOS=10, VACAS=5, TERNEROS in and out (0)
        approve_event(EventType.BIRTH, qty_heads=10, event_date=date(2024, 3, 1))
        approve_event(
            EventType.BIRTH, qty_heads=5, event_date=date(2024, 3, 2), category_id=categories["VACAS"].id
        )
        approve_event(
            EventType.BIRTH, qty_heads=2, event_date=date(2024, 3, 3), category_id=categories["TERNEROS"].id
        )
        approve_event(
            EventType.MOVE_EXTERNAL_OUT,
            qty_heads=2,
            event_date=date(2024, 4, 1),
            category_id=categories["TERNEROS"].id,
            guide_series="D",
            guide_number="9",
        )
        orchestrator.close_sheet(prior_sheet.id, test_actor_id)
        return prior_sheet

    def test_initial_heads_come_from_prior_close(
        self, orchestrator, closed_prior, categories, premise_id, firm_id, test_actor_id
    ):
        current = open_current(orchestrator, premise_id, firm_id, test_actor_id)

        balances = orchestrator.compute_balances(current.id)

        assert balances[categories["NOVILLOS"].id].initial_heads == 10
        assert balances[categories["VACAS"].id].initial_heads == 5

    def test_emptied_category_is_carried(
        self, orchestrator, closed_prior, categories, premise_id, firm_id, test_actor_id
    ):
        current = open_current(orchestrator, premise_id, firm_id, test_actor_id)

        balances = orchestrator.compute_balances(current.id)

        assert balances[categories["TERNEROS"].id].final_heads == 0

    def test_category_change_is_neutral_across_close(
        self, orchestrator, closed_prior, categories, premise_id, firm_id, approve_event, ledger_selector, test_actor_id
    ):
        current = open_current(orchestrator, premise_id, firm_id, test_actor_id)
        approve_event(
            EventType.CATEGORY_CHANGE,
            qty_heads=3,
            category_from_id=categories["NOVILLOS"].id,
            category_to_id=categories["VACAS"].id,
        )

        orchestrator.close_sheet(current.id, test_actor_id)

        finals = {b.category_id: b.final_heads for b in ledger_selector.get_closing_balances(current.id)}
        assert finals[categories["NOVILLOS"].id] == 7
        assert finals[categories["VACAS"].id] == 8
        assert sum(finals.values()) == 15

    def test_event_inside_closed_period_is_a_conflict(
        self, orchestrator, closed_prior, premise_id, firm_id, approve_event, test_actor_id
    ):
        open_current(orchestrator, premise_id, firm_id, test_actor_id)

        result = approve_event(EventType.BIRTH, qty_heads=1, event_date=date(2024, 5, 1))

        assert result.is_blocked
        assert result.error_codes == ("SHEET_CLOSED",)
