"""
EventIntakeService -- persists raw livestock event submissions as PENDING.

Responsibility:
    Entry point for events coming from the collaborator (UI/CRUD) layer.
    Checks field shape only (known type and scope, explicit firm and
    premise), normalizes guide keys and species, and stores the event.

Architecture position:
    Kernel > Services -- imperative shell.  Business rules are NOT checked
    here; they run at approval time (EventValidator).

Invariants enforced:
    - ``firm_id`` and ``premise_id`` are explicit on every event; nothing
      is read from ambient state.
    - Guide series is trimmed and upper-cased; species is upper-cased.

Failure modes:
    - InvalidSubmissionError: unknown event type or scope, or missing
      firm / premise / event date.

Audit relevance:
    EVENT_SUBMITTED audit event per stored event.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import EventSubmission
from contralor_kernel.domain.event_types import EventScope, EventStatus, EventType
from contralor_kernel.domain.guide_rules import normalize_guide_key
from contralor_kernel.exceptions import InvalidSubmissionError
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService

logger = get_logger("services.intake")


class EventIntakeService(BaseService):
    """
    Stores submitted events.

    Non-goals:
        - Does NOT validate regulatory rules.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor

    def submit(self, submission: EventSubmission, actor_id: UUID) -> LivestockEvent:
        """Persist ``submission`` as a PENDING event."""
        try:
            event_type = EventType(submission.event_type)
        except ValueError:
            raise InvalidSubmissionError(
                f"unknown event type {submission.event_type!r}", "event_type"
            ) from None
        try:
            scope = EventScope(submission.scope)
        except ValueError:
            raise InvalidSubmissionError(
                f"unknown scope {submission.scope!r}", "scope"
            ) from None

        for field_name in ("firm_id", "premise_id", "event_date"):
            if getattr(submission, field_name) is None:
                raise InvalidSubmissionError(f"{field_name} is required", field_name)

        guide_series, guide_number = submission.guide_series, submission.guide_number
        if guide_series and guide_number:
            guide_series, guide_number = normalize_guide_key(guide_series, guide_number)

        event = LivestockEvent(
            firm_id=submission.firm_id,
            premise_id=submission.premise_id,
            event_type=event_type.value,
            scope=scope.value,
            species=submission.species.strip().upper() if submission.species else None,
            animal_id=submission.animal_id,
            herd_id=submission.herd_id,
            qty_heads=submission.qty_heads,
            qty_kg=submission.qty_kg,
            category_id=submission.category_id,
            category_from_id=submission.category_from_id,
            category_to_id=submission.category_to_id,
            guide_series=guide_series or None,
            guide_number=guide_number or None,
            origin_registration=submission.origin_registration,
            destination_registration=submission.destination_registration,
            withdraw_days=submission.withdraw_days,
            event_date=submission.event_date,
            notes=submission.notes,
            status=EventStatus.PENDING.value,
            created_by_id=actor_id,
        )
        self.session.add(event)
        self.session.flush()

        self._auditor.record_event_submitted(
            event.id, event_type.value, submission.premise_id, actor_id
        )
        logger.info(
            "event_submitted",
            extra={
                "event_id": str(event.id),
                "event_type": event_type.value,
                "premise_id": str(submission.premise_id),
            },
        )
        return event
