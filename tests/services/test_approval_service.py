"""
Tests for the event approval state machine.

Covers:
- PENDING -> APPROVED writes exactly one entry for reportable types
- BLOCKED approvals write nothing and report every issue
- The 30-day filing deadline (31 blocked, 30 and 26 warned)
- Guide duplicate use (A-1000) and counterpart pairs
- Mirror matching between a SALE and a PURCHASE on another premise
- Subject effects (withdrawal, category, retirement)
- Terminal states
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from contralor_kernel.domain.dtos import ApprovalOutcome, IssueKind
from contralor_kernel.domain.event_types import EventScope, EventType
from contralor_kernel.exceptions import EventAlreadyDecidedError, EventNotFoundError
from contralor_kernel.models.audit_event import AuditAction
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.models.guide import Guide
from contralor_kernel.models.ledger import LedgerEntry
from contralor_kernel.models.reference import Animal
from tests.conftest import REGISTRATION_NUMBER, SHEET_END, SHEET_START, TODAY


def entry_count(session) -> int:
    return session.execute(select(func.count()).select_from(LedgerEntry)).scalar_one()


class TestApproveReportable:
    """A valid reportable event is approved with exactly one entry."""

    def test_death_writes_one_out_line(self, session, open_sheet, categories, approve_event):
        result = approve_event(EventType.DEATH, qty_heads=2)

        assert result.outcome == ApprovalOutcome.APPROVED
        assert result.is_approved
        entry = session.get(LedgerEntry, result.entry_id)
        assert entry.sheet_id == open_sheet.id
        assert entry.operation_label == "DEATH"
        assert [(l.category_id, l.direction, l.qty_heads) for l in entry.lines] == [
            (categories["NOVILLOS"].id, "OUT", 2)
        ]

    def test_event_is_stamped_approved(self, session, open_sheet, submit_event, orchestrator, test_actor_id):
        event_id = submit_event(EventType.BIRTH, qty_heads=4)

        orchestrator.approve(event_id, test_actor_id)

        event = session.get(LivestockEvent, event_id)
        assert event.status == "APPROVED"
        assert event.decided_by_id == test_actor_id
        assert event.decided_at is not None

    def test_entry_sequence_is_monotonic(self, session, open_sheet, approve_event):
        first = approve_event(EventType.BIRTH, qty_heads=1)
        second = approve_event(EventType.BIRTH, qty_heads=1)

        assert session.get(LedgerEntry, second.entry_id).seq > session.get(LedgerEntry, first.entry_id).seq

    def test_category_change_writes_two_lines(self, session, open_sheet, categories, approve_event, orchestrator):
        result = approve_event(
            EventType.CATEGORY_CHANGE,
            qty_heads=3,
            category_from_id=categories["NOVILLOS"].id,
            category_to_id=categories["VACAS"].id,
        )

        entry = session.get(LedgerEntry, result.entry_id)
        assert sorted((l.direction, l.qty_heads) for l in entry.lines) == [("IN", 3), ("OUT", 3)]

        balances = orchestrator.compute_balances(open_sheet.id)
        assert balances[categories["NOVILLOS"].id].final_heads == -3
        assert balances[categories["VACAS"].id].final_heads == 3

    def test_approval_is_logged(self, open_sheet, approve_event, captured_logs):
        approve_event(EventType.BIRTH, qty_heads=1)

        approved = [r for r in captured_logs() if r["message"] == "event_approved"]
        assert len(approved) == 1
        assert approved[0]["event_type"] == "BIRTH"
        assert approved[0]["entry_id"] is not None


class TestApproveNonReportable:
    def test_weighing_is_recorded_without_entry(self, session, approve_event, auditor_service):
        result = approve_event(EventType.WEIGHING, qty_kg=None)

        assert result.is_approved
        assert result.entry_id is None
        assert entry_count(session) == 0
        trace = auditor_service.get_trace("LivestockEvent", result.event_id)
        assert trace.actions == (AuditAction.EVENT_SUBMITTED, AuditAction.EVENT_RECORDED_ONLY)

    def test_health_treatment_needs_no_sheet(self, create_animal, categories, approve_event):
        animal = create_animal(categories["VACAS"])

        result = approve_event(
            EventType.HEALTH_TREATMENT,
            scope=EventScope.ANIMAL,
            animal_id=animal.id,
            withdraw_days=10,
        )

        assert result.is_approved


class TestBlocked:
    """A blocked approval changes nothing and lists every violated rule."""

    def test_every_issue_is_reported(self, session, open_sheet, submit_event, orchestrator, test_actor_id):
        event_id = submit_event(EventType.SALE, qty_heads=None, event_date=TODAY + timedelta(days=3))

        result = orchestrator.approve(event_id, test_actor_id)

        assert result.outcome == ApprovalOutcome.BLOCKED
        assert set(result.error_codes) >= {
            "QUANTITY_REQUIRED",
            "GUIDE_REQUIRED",
            "EVENT_DATE_IN_FUTURE",
        }
        assert session.get(LivestockEvent, event_id).status == "PENDING"
        assert entry_count(session) == 0

    def test_no_open_sheet(self, approve_event):
        result = approve_event(EventType.BIRTH, qty_heads=2)

        assert result.is_blocked
        assert result.error_codes == ("NO_OPEN_SHEET",)

    def test_blocked_event_can_be_approved_once_fixed(
        self, submit_event, orchestrator, premise_id, firm_id, test_actor_id
    ):
        event_id = submit_event(EventType.BIRTH, qty_heads=2)
        assert orchestrator.approve(event_id, test_actor_id).is_blocked

        orchestrator.open_sheet(
            premise_id,
            firm_id,
            "BOVINO",
            SHEET_START,
            SHEET_END,
            REGISTRATION_NUMBER,
            test_actor_id,
        )

        assert orchestrator.approve(event_id, test_actor_id).is_approved

    def test_blocked_is_logged_at_warning(self, approve_event, captured_logs):
        approve_event(EventType.BIRTH, qty_heads=2)

        blocked = [r for r in captured_logs() if r["message"] == "approval_blocked"]
        assert blocked[0]["level"] == "WARNING"
        assert blocked[0]["error_codes"] == ["NO_OPEN_SHEET"]


class TestFilingDeadline:
    def test_death_after_31_days_is_blocked(self, session, open_sheet, approve_event):
        result = approve_event(EventType.DEATH, qty_heads=1, event_date=TODAY - timedelta(days=31))

        assert result.is_blocked
        assert result.error_codes == ("DEADLINE_EXCEEDED",)
        assert entry_count(session) == 0

    def test_death_after_exactly_30_days_is_approved_with_warning(self, open_sheet, approve_event):
        result = approve_event(EventType.DEATH, qty_heads=1, event_date=TODAY - timedelta(days=30))

        assert result.is_approved
        assert "DEADLINE_APPROACHING" in result.notice_codes

    def test_death_after_26_days_is_approved_with_warning(self, open_sheet, approve_event):
        result = approve_event(EventType.DEATH, qty_heads=1, event_date=TODAY - timedelta(days=26))

        assert result.is_approved
        assert result.notice_codes == ("DEADLINE_APPROACHING",)

    def test_recent_death_has_no_warning(self, open_sheet, approve_event):
        result = approve_event(EventType.DEATH, qty_heads=1, event_date=TODAY - timedelta(days=5))

        assert result.notice_codes == ()


class TestGuideUse:
    """Guide A-1000 may back one PURCHASE per premise."""

    def test_first_purchase_auto_registers_the_guide(self, session, open_sheet, approve_event):
        result = approve_event(EventType.PURCHASE, qty_heads=5, guide_series="a", guide_number="1000")

        assert result.is_approved
        assert "GUIDE_AUTO_REGISTER" in result.notice_codes
        guide = session.execute(select(Guide).where(Guide.series == "A")).scalar_one()
        assert guide.number == "1000"
        assert guide.auto_registered is True
        assert session.get(LedgerEntry, result.entry_id).guide_id == guide.id

    def test_second_purchase_is_blocked(self, open_sheet, approve_event):
        approve_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="1000")

        result = approve_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="1000")

        assert result.is_blocked
        assert result.error_codes == ("GUIDE_ALREADY_CONSUMED",)
        assert result.errors[0].kind == IssueKind.CONFLICT

    def test_pending_use_also_consumes_the_guide(self, open_sheet, submit_event, approve_event):
        submit_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="1000")

        result = approve_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="1000")

        assert "GUIDE_ALREADY_CONSUMED" in result.error_codes

    def test_counterpart_external_move_is_allowed(self, open_sheet, approve_event):
        approve_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="1000")

        result = approve_event(EventType.MOVE_EXTERNAL_IN, qty_heads=5, guide_series="A", guide_number="1000")

        assert result.is_approved

    def test_rejected_use_frees_the_guide(self, open_sheet, submit_event, orchestrator, approve_event, test_actor_id):
        rejected = submit_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="7")
        orchestrator.reject(rejected, test_actor_id, "wrong herd")

        result = approve_event(EventType.PURCHASE, qty_heads=5, guide_series="A", guide_number="7")

        assert result.is_approved


class TestMirrorMatching:
    """A SALE on guide B-42 is matched with the buyer's PURCHASE."""

    @pytest.fixture
    def buyer_herd(self, create_herd, categories, other_premise_id):
        return create_herd(categories["NOVILLOS"], premise=other_premise_id)

    @pytest.fixture
    def buyer_sheet(self, orchestrator, other_premise_id, firm_id, test_actor_id):
        return orchestrator.open_sheet(
            other_premise_id, firm_id, "BOVINO", SHEET_START, SHEET_END, "210-999-001", test_actor_id
        )

    def test_sale_without_purchase_is_pending(self, open_sheet, approve_event):
        result = approve_event(EventType.SALE, qty_heads=5, guide_series="B", guide_number="42")

        assert result.is_approved
        assert "MIRROR_PENDING" in result.notice_codes
        assert result.mirror_event_id is None

    def test_purchase_links_to_sale(
        self, session, open_sheet, buyer_sheet, buyer_herd, other_premise_id, approve_event
    ):
        sale = approve_event(EventType.SALE, qty_heads=5, guide_series="B", guide_number="42")

        purchase = approve_event(
            EventType.PURCHASE,
            qty_heads=5,
            guide_series="B",
            guide_number="42",
            premise_id=other_premise_id,
            herd_id=buyer_herd.id,
        )

        assert purchase.is_approved
        assert "MIRROR_LINKED" in purchase.notice_codes
        assert purchase.mirror_event_id == sale.event_id
        assert session.get(LivestockEvent, sale.event_id).mirror_event_id == purchase.event_id
        assert session.get(LivestockEvent, purchase.event_id).mirror_event_id == sale.event_id

    def test_linked_sale_is_not_matched_twice(
        self, open_sheet, buyer_sheet, buyer_herd, other_premise_id, approve_event, orchestrator
    ):
        approve_event(EventType.SALE, qty_heads=5, guide_series="B", guide_number="42")
        approve_event(
            EventType.PURCHASE,
            qty_heads=5,
            guide_series="B",
            guide_number="42",
            premise_id=other_premise_id,
            herd_id=buyer_herd.id,
        )

        guide_mirror = orchestrator.guides.find_mirror(
            orchestrator.session.execute(
                select(LivestockEvent).where(LivestockEvent.event_type == "PURCHASE")
            ).scalar_one()
        )

        assert guide_mirror is None

    def test_mirror_search_includes_own_premise(
        self, session, open_sheet, approve_event, submit_event, orchestrator
    ):
        sale = approve_event(EventType.SALE, qty_heads=5, guide_series="B", guide_number="42")
        purchase_id = submit_event(
            EventType.PURCHASE, qty_heads=5, guide_series="B", guide_number="42"
        )

        guide_mirror = orchestrator.guides.find_mirror(session.get(LivestockEvent, purchase_id))

        assert guide_mirror is not None
        assert guide_mirror.id == sale.event_id

    def test_mirror_link_is_audited(
        self, open_sheet, buyer_sheet, buyer_herd, other_premise_id, approve_event, auditor_service
    ):
        sale = approve_event(EventType.SALE, qty_heads=5, guide_series="B", guide_number="42")
        approve_event(
            EventType.PURCHASE,
            qty_heads=5,
            guide_series="B",
            guide_number="42",
            premise_id=other_premise_id,
            herd_id=buyer_herd.id,
        )

        trace = auditor_service.get_trace("LivestockEvent", sale.event_id)
        assert AuditAction.MIRROR_LINKED in trace.actions


class TestSubjectEffects:
    def test_treatment_sets_withdrawal_then_blocks_faena(self, session, open_sheet, categories, create_animal, approve_event):
        animal = create_animal(categories["VACAS"])

        approve_event(
            EventType.HEALTH_TREATMENT,
            scope=EventScope.ANIMAL,
            animal_id=animal.id,
            withdraw_days=10,
            event_date=TODAY - timedelta(days=2),
        )
        assert session.get(Animal, animal.id).withdraw_until == TODAY + timedelta(days=8)

        result = approve_event(EventType.FAENA, scope=EventScope.ANIMAL, animal_id=animal.id, qty_heads=1)

        assert result.is_blocked
        assert result.error_codes == ("SUBJECT_IN_WITHDRAWAL",)

    def test_faena_after_withdrawal_retires_the_animal(self, session, open_sheet, categories, create_animal, approve_event):
        animal = create_animal(categories["VACAS"], withdraw_until=TODAY - timedelta(days=1))

        result = approve_event(EventType.FAENA, scope=EventScope.ANIMAL, animal_id=animal.id, qty_heads=1)

        assert result.is_approved
        assert session.get(Animal, animal.id).status == "INACTIVE"

    def test_category_change_moves_the_animal(self, session, open_sheet, categories, create_animal, approve_event):
        animal = create_animal(categories["TERNEROS"])

        approve_event(
            EventType.CATEGORY_CHANGE,
            scope=EventScope.ANIMAL,
            animal_id=animal.id,
            qty_heads=1,
            category_from_id=categories["TERNEROS"].id,
            category_to_id=categories["NOVILLOS"].id,
        )

        assert session.get(Animal, animal.id).current_category_id == categories["NOVILLOS"].id

    def test_herd_events_leave_animals_alone(self, session, open_sheet, categories, create_animal, approve_event):
        animal = create_animal(categories["NOVILLOS"])

        approve_event(EventType.DEATH, qty_heads=1)

        assert session.get(Animal, animal.id).status == "ACTIVE"


class TestTerminalStates:
    def test_approving_twice_raises(self, open_sheet, submit_event, orchestrator, test_actor_id):
        event_id = submit_event(EventType.BIRTH, qty_heads=1)
        orchestrator.approve(event_id, test_actor_id)

        with pytest.raises(EventAlreadyDecidedError) as exc_info:
            orchestrator.approve(event_id, test_actor_id)

        assert exc_info.value.status == "APPROVED"

    def test_rejecting_approved_raises(self, open_sheet, submit_event, orchestrator, test_actor_id):
        event_id = submit_event(EventType.BIRTH, qty_heads=1)
        orchestrator.approve(event_id, test_actor_id)

        with pytest.raises(EventAlreadyDecidedError):
            orchestrator.reject(event_id, test_actor_id)

    def test_reject_records_reason(self, session, submit_event, orchestrator, test_actor_id, auditor_service):
        event_id = submit_event(EventType.BIRTH, qty_heads=1)

        result = orchestrator.reject(event_id, test_actor_id, "duplicate report")

        assert result.outcome == ApprovalOutcome.REJECTED
        event = session.get(LivestockEvent, event_id)
        assert event.status == "REJECTED"
        assert event.rejection_reason == "duplicate report"
        trace = auditor_service.get_trace("LivestockEvent", event_id)
        assert trace.entries[-1].action == AuditAction.EVENT_REJECTED
        assert trace.entries[-1].payload["reason"] == "duplicate report"

    def test_approving_rejected_raises(self, submit_event, orchestrator, test_actor_id):
        event_id = submit_event(EventType.BIRTH, qty_heads=1)
        orchestrator.reject(event_id, test_actor_id)

        with pytest.raises(EventAlreadyDecidedError):
            orchestrator.approve(event_id, test_actor_id)

    def test_unknown_event(self, orchestrator, test_actor_id):
        from uuid import uuid4

        with pytest.raises(EventNotFoundError):
            orchestrator.approve(uuid4(), test_actor_id)


class TestValidatePreview:
    def test_preview_writes_nothing(self, session, open_sheet, submit_event, orchestrator):
        event_id = submit_event(EventType.DEATH, qty_heads=1, event_date=TODAY - timedelta(days=31))

        result = orchestrator.validate_event(event_id)

        assert result.error_codes == ("DEADLINE_EXCEEDED",)
        assert session.get(LivestockEvent, event_id).status == "PENDING"
        assert entry_count(session) == 0
