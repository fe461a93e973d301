"""
GuideRegistry -- movement guide lookup, auto-registration and mirror matching.

Responsibility:
    Reads registered guides and their prior uses, evaluates a guide against
    an event (delegating the rules to ``domain.guide_rules``), registers
    guides first seen on an approval, and finds and links the mirror event
    (the complementary SALE/PURCHASE on the counterpart premise).

Architecture position:
    Kernel > Services -- imperative shell around the pure guide rules.
    Called by ApprovalService and LedgerSynthesizer.

Invariants enforced:
    - (series, number) is unique; concurrent first references converge on
      one row (savepoint + IntegrityError retry).
    - Duplicate-use detection considers only non-rejected events on the
      same premise; mirror search spans every premise.
    - Mirror linkage is set once on both sides and never overwritten.

Failure modes:
    - GuideNotFoundError from ``require_guide`` for an unknown key.

Audit relevance:
    Auto-registration and mirror linkage each produce an audit event.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import GuideCheck, GuideInfo, GuideUse
from contralor_kernel.domain.event_types import (
    EventStatus,
    EventType,
    GuideStatus,
    SheetStatus,
)
from contralor_kernel.domain.guide_rules import (
    check_guide,
    mirror_type_for,
    normalize_guide_key,
)
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.exceptions import GuideNotFoundError
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.models.guide import Guide
from contralor_kernel.models.ledger import LedgerSheet
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService

logger = get_logger("services.guide_registry")


class GuideRegistry(BaseService):
    """
    Registry of official movement guides.

    Contract:
        ``validate_guide`` never writes.  ``register_if_absent`` and
        ``link_mirror`` flush within the caller's transaction.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT change the status of a registered guide; that is the
          issuing authority's data.
    """

    def __init__(
        self,
        session: Session,
        rules: RegulatoryRules,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rules
        self._auditor = auditor

    @staticmethod
    def to_info(guide: Guide) -> GuideInfo:
        return GuideInfo(
            id=guide.id,
            series=guide.series,
            number=guide.number,
            species=guide.species,
            status=GuideStatus(guide.status),
            origin_registration=guide.origin_registration,
            destination_registration=guide.destination_registration,
            registration_code=guide.registration_code,
        )

    def get_guide(self, series: str, number: str) -> Guide | None:
        series, number = normalize_guide_key(series, number)
        return self.session.execute(
            select(Guide).where(Guide.series == series, Guide.number == number)
        ).scalar_one_or_none()

    def require_guide(self, series: str, number: str) -> Guide:
        guide = self.get_guide(series, number)
        if guide is None:
            raise GuideNotFoundError(series, number)
        return guide

    def prior_uses(self, series: str, number: str, premise_id: UUID) -> list[GuideUse]:
        """Non-rejected events on ``premise_id`` that cite the guide."""
        series, number = normalize_guide_key(series, number)
        rows = self.session.execute(
            select(LivestockEvent.id, LivestockEvent.event_type, LivestockEvent.status)
            .where(LivestockEvent.premise_id == premise_id)
            .where(LivestockEvent.guide_series == series)
            .where(LivestockEvent.guide_number == number)
            .where(LivestockEvent.status != EventStatus.REJECTED.value)
            .order_by(LivestockEvent.created_at)
        ).all()
        return [
            GuideUse(
                event_id=row.id,
                event_type=EventType(row.event_type),
                status=EventStatus(row.status),
            )
            for row in rows
        ]

    def open_sheet_registration(self, premise_id: UUID, species: str | None) -> str | None:
        """DICOSE registration on the premise's OPEN sheet for ``species``."""
        sheet_type = self._rules.sheet_type_for(species)
        if sheet_type is None:
            return None
        return self.session.execute(
            select(LedgerSheet.registration_number)
            .where(LedgerSheet.premise_id == premise_id)
            .where(LedgerSheet.sheet_type == sheet_type)
            .where(LedgerSheet.status == SheetStatus.OPEN.value)
        ).scalar_one_or_none()

    def validate_guide(
        self,
        series: str,
        number: str,
        event_type: EventType | str,
        species: str | None,
        premise_id: UUID,
        sheet_registration: str | None = None,
        event_id: UUID | None = None,
    ) -> GuideCheck:
        """
        Evaluate the guide ``series``-``number`` for an event of ``event_type``.

        Without ``sheet_registration`` the destination check uses the
        registration of the premise's OPEN sheet for the species, if any.
        ``event_id`` excludes the event itself from the duplicate-use check
        when validating an already-submitted event.
        """
        if sheet_registration is None:
            sheet_registration = self.open_sheet_registration(premise_id, species)
        guide = self.get_guide(series, number)
        check = check_guide(
            event_type=event_type,
            species=species,
            series=series,
            number=number,
            guide=self.to_info(guide) if guide is not None else None,
            prior_uses=self.prior_uses(series, number, premise_id),
            sheet_registration=sheet_registration,
            rules=self._rules,
            event_id=event_id,
        )
        if not check.valid:
            logger.info(
                "guide_check_failed",
                extra={
                    "guide_key": f"{series}-{number}",
                    "event_type": EventType(event_type).value,
                    "issue_codes": [i.code for i in check.issues],
                },
            )
        return check

    def register_if_absent(
        self,
        series: str,
        number: str,
        actor_id: UUID,
        species: str | None = None,
        origin_registration: str | None = None,
        destination_registration: str | None = None,
    ) -> Guide:
        """
        Return the guide, registering it (``auto_registered``) if unknown.

        A concurrent registration of the same key is absorbed by retrying
        the lookup after the savepoint rolls back.
        """
        series, number = normalize_guide_key(series, number)
        existing = self.get_guide(series, number)
        if existing is not None:
            return existing

        savepoint = self.session.begin_nested()
        try:
            guide = Guide(
                series=series,
                number=number,
                species=species.upper() if species else None,
                status=GuideStatus.VALID.value,
                origin_registration=origin_registration,
                destination_registration=destination_registration,
                auto_registered=True,
                created_by_id=actor_id,
            )
            self.session.add(guide)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "guide_registration_race_retry",
                extra={"guide_key": f"{series}-{number}"},
            )
            return self.require_guide(series, number)

        self._auditor.record_guide_registered(guide.id, series, number, actor_id)
        logger.info(
            "guide_auto_registered",
            extra={"guide_key": guide.key, "guide_id": str(guide.id)},
        )
        return guide

    def find_mirror(self, event: LivestockEvent) -> LivestockEvent | None:
        """
        The approved complementary event citing the same guide, if any.

        SALE looks for a PURCHASE and vice versa, on any premise.  Events
        already linked elsewhere are skipped.
        """
        mirror_type = mirror_type_for(event.event_type)
        if mirror_type is None or not event.has_guide:
            return None

        return self.session.execute(
            select(LivestockEvent)
            .where(LivestockEvent.event_type == mirror_type.value)
            .where(LivestockEvent.guide_series == event.guide_series)
            .where(LivestockEvent.guide_number == event.guide_number)
            .where(LivestockEvent.status == EventStatus.APPROVED.value)
            .where(LivestockEvent.mirror_event_id.is_(None))
            .where(LivestockEvent.id != event.id)
            .order_by(LivestockEvent.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def link_mirror(
        self, event: LivestockEvent, mirror: LivestockEvent, actor_id: UUID
    ) -> None:
        """Point both events at each other; existing links are left alone."""
        if event.mirror_event_id is None:
            event.mirror_event_id = mirror.id
            event.updated_by_id = actor_id
        if mirror.mirror_event_id is None:
            mirror.mirror_event_id = event.id
            mirror.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_mirror_linked(event.id, mirror.id, actor_id)
        self._auditor.record_mirror_linked(mirror.id, event.id, actor_id)
        logger.info(
            "mirror_linked",
            extra={
                "event_id": str(event.id),
                "mirror_event_id": str(mirror.id),
                "guide_key": f"{event.guide_series}-{event.guide_number}",
            },
        )
