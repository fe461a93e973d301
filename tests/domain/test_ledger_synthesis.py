"""Tests for the pure mapping from approved events to register lines."""

from datetime import date
from uuid import uuid4

import pytest

from contralor_kernel.domain.dtos import (
    EventSnapshot,
    GuideInfo,
    LineSpec,
    SubjectInfo,
)
from contralor_kernel.domain.event_types import (
    Direction,
    EventScope,
    EventType,
    GuideStatus,
)
from contralor_kernel.domain.ledger_synthesis import (
    build_entry_draft,
    check_line_balance,
    registration_code_for,
    resolve_category,
    synthesize_lines,
)
from contralor_kernel.exceptions import LineImbalanceError

CAT_A = uuid4()
CAT_B = uuid4()


def make_event(event_type, **overrides) -> EventSnapshot:
    fields = {
        "id": uuid4(),
        "firm_id": uuid4(),
        "premise_id": uuid4(),
        "event_type": event_type,
        "scope": EventScope.HERD,
        "event_date": date(2024, 9, 1),
        "species": "BOVINO",
        "herd_id": uuid4(),
        "qty_heads": 5,
        "category_id": CAT_A,
    }
    fields.update(overrides)
    return EventSnapshot(**fields)


class TestLineDirections:
    @pytest.mark.parametrize(
        "event_type",
        [
            EventType.BIRTH,
            EventType.PURCHASE,
            EventType.MOVE_EXTERNAL_IN,
            EventType.CONSIGNACION_IN,
            EventType.REMATE_IN,
        ],
    )
    def test_inbound(self, event_type):
        assert synthesize_lines(make_event(event_type)) == (LineSpec(CAT_A, Direction.IN, 5),)

    @pytest.mark.parametrize(
        "event_type",
        [
            EventType.SALE,
            EventType.MOVE_EXTERNAL_OUT,
            EventType.CONSIGNACION_OUT,
            EventType.REMATE_OUT,
            EventType.DEATH,
            EventType.CONSUMPTION,
            EventType.LOST_WITH_HIDE,
            EventType.FAENA,
        ],
    )
    def test_outbound(self, event_type):
        assert synthesize_lines(make_event(event_type)) == (LineSpec(CAT_A, Direction.OUT, 5),)

    @pytest.mark.parametrize(
        "event_type",
        [EventType.MOVE_INTERNAL, EventType.WEIGHING, EventType.HEALTH_TREATMENT],
    )
    def test_non_reportable_write_nothing(self, event_type):
        assert synthesize_lines(make_event(event_type)) == ()


class TestCategoryChange:
    def test_writes_one_out_and_one_in_line(self):
        event = make_event(
            EventType.CATEGORY_CHANGE,
            category_id=None,
            category_from_id=CAT_A,
            category_to_id=CAT_B,
            qty_heads=3,
        )

        assert synthesize_lines(event) == (
            LineSpec(CAT_A, Direction.OUT, 3),
            LineSpec(CAT_B, Direction.IN, 3),
        )

    def test_missing_categories_raise(self):
        event = make_event(EventType.CATEGORY_CHANGE, category_from_id=CAT_A)

        with pytest.raises(ValueError):
            synthesize_lines(event)


class TestLineBalance:
    def test_balanced(self):
        check_line_balance([LineSpec(CAT_A, Direction.OUT, 2), LineSpec(CAT_B, Direction.IN, 2)])

    def test_imbalanced(self):
        with pytest.raises(LineImbalanceError) as exc_info:
            check_line_balance([LineSpec(CAT_A, Direction.OUT, 2), LineSpec(CAT_B, Direction.IN, 3)])

        assert exc_info.value.heads_in == 3
        assert exc_info.value.heads_out == 2

    def test_line_heads_must_be_positive(self):
        with pytest.raises(ValueError):
            LineSpec(CAT_A, Direction.IN, 0)


class TestCategoryResolution:
    def test_event_category_wins(self):
        subject = SubjectInfo(id=uuid4(), scope=EventScope.HERD, species="BOVINO", category_id=CAT_B)

        assert resolve_category(make_event(EventType.DEATH), subject) == CAT_A

    def test_falls_back_to_subject(self):
        subject = SubjectInfo(id=uuid4(), scope=EventScope.HERD, species="BOVINO", category_id=CAT_B)
        event = make_event(EventType.DEATH, category_id=None)

        assert synthesize_lines(event, subject) == (LineSpec(CAT_B, Direction.OUT, 5),)

    def test_unresolvable_category_raises(self):
        with pytest.raises(ValueError):
            synthesize_lines(make_event(EventType.DEATH, category_id=None))


class TestEntryDraft:
    def test_registration_code_prefers_guide(self, rules):
        guide = GuideInfo(
            id=uuid4(), series="A", number="1", species="BOVINO",
            status=GuideStatus.VALID, registration_code="Z",
        )

        assert registration_code_for(EventType.PURCHASE, guide, rules) == "Z"
        assert registration_code_for(EventType.PURCHASE, None, rules) == "A"
        assert registration_code_for(EventType.BIRTH, None, rules) is None

    def test_draft_takes_registrations_from_guide(self, rules):
        guide = GuideInfo(
            id=uuid4(), series="B", number="42", species="BOVINO",
            status=GuideStatus.VALID,
            origin_registration="111-111-111",
            destination_registration="222-222-222",
        )
        event = make_event(EventType.SALE, guide_series="B", guide_number="42")

        draft = build_entry_draft(event, None, guide, rules)

        assert draft.operation_label == "SALE"
        assert draft.entry_date == event.event_date
        assert draft.registration_code == "B"
        assert draft.origin_registration == "111-111-111"
        assert draft.destination_registration == "222-222-222"

    def test_event_registrations_override_guide(self, rules):
        event = make_event(EventType.SALE, destination_registration="333-333-333")

        draft = build_entry_draft(event, None, None, rules)

        assert draft.destination_registration == "333-333-333"
        assert draft.origin_registration is None

    def test_no_draft_for_non_reportable(self, rules):
        assert build_entry_draft(make_event(EventType.WEIGHING), None, None, rules) is None
