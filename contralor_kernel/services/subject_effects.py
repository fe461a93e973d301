"""
SubjectEffects -- subject lookups and the explicit post-approval subject sync.

Responsibility:
    Resolves the animal or herd an event refers to into a ``SubjectInfo``
    for validation and synthesis, and applies the effects an approval has
    on an animal: current category after a CATEGORY_CHANGE, withdrawal
    date after a HEALTH_TREATMENT, retirement after an exit or sale.

Architecture position:
    Kernel > Services -- imperative shell.  Invoked by ApprovalService
    inside the approval savepoint, immediately after the status change.

Invariants enforced:
    - Effects run in the same unit as the approval; nothing happens
      outside the approval call graph.
    - Only ANIMAL-scope events change an animal.

Audit relevance:
    Each applied change produces a SUBJECT_UPDATED audit event.
"""

from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import EventSnapshot, SubjectInfo
from contralor_kernel.domain.event_types import (
    ANIMAL_RETIRING_TYPES,
    EventScope,
    EventType,
)
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.reference import Animal, Herd
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService

logger = get_logger("services.subject_effects")


class SubjectEffects(BaseService):
    """Reads subjects and applies approval side effects to animals."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor

    def get_subject(self, event: EventSnapshot) -> SubjectInfo | None:
        if event.scope == EventScope.ANIMAL and event.animal_id is not None:
            animal = self.session.get(Animal, event.animal_id)
            if animal is None:
                return None
            return SubjectInfo(
                id=animal.id,
                scope=EventScope.ANIMAL,
                species=animal.species,
                category_id=animal.current_category_id,
                withdraw_until=animal.withdraw_until,
                is_active=animal.is_active,
            )
        if event.scope == EventScope.HERD and event.herd_id is not None:
            herd = self.session.get(Herd, event.herd_id)
            if herd is None:
                return None
            return SubjectInfo(
                id=herd.id,
                scope=EventScope.HERD,
                species=herd.species,
                category_id=herd.category_id,
            )
        return None

    def apply(self, event: EventSnapshot, actor_id: UUID) -> dict[str, Any]:
        """
        Apply the approval's effects to the event's animal.

        Returns the changed fields (empty when nothing changed).
        """
        if event.scope != EventScope.ANIMAL or event.animal_id is None:
            return {}
        animal = self.session.get(Animal, event.animal_id)
        if animal is None:
            return {}

        event_type = EventType(event.event_type)
        changes: dict[str, Any] = {}

        if event_type == EventType.HEALTH_TREATMENT and event.withdraw_days:
            withdraw_until = event.event_date + timedelta(days=event.withdraw_days)
            animal.withdraw_until = withdraw_until
            changes["withdraw_until"] = withdraw_until

        if (
            event_type == EventType.CATEGORY_CHANGE
            and event.category_to_id is not None
            and animal.current_category_id != event.category_to_id
        ):
            animal.current_category_id = event.category_to_id
            changes["current_category_id"] = event.category_to_id

        if event_type in ANIMAL_RETIRING_TYPES and animal.is_active:
            animal.status = "INACTIVE"
            changes["status"] = "INACTIVE"

        if not changes:
            return changes

        animal.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record_subject_updated(animal.id, event.id, changes, actor_id)
        logger.info(
            "subject_updated",
            extra={
                "animal_id": str(animal.id),
                "source_event_id": str(event.id),
                "changed_fields": sorted(changes),
            },
        )
        return changes
