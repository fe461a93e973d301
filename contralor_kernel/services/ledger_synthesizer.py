"""
LedgerSynthesizer -- writes the register entry of an approved event.

Responsibility:
    Registers a first-seen guide, builds the entry draft via
    ``domain.ledger_synthesis`` and persists the LedgerEntry with its lines
    on the OPEN sheet.  ``write_entry`` is shared with CorrectionService.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by ApprovalService
    (inside the approval savepoint) and CorrectionService.

Invariants enforced:
    - Entry seq comes from the sheet's SequenceService counter.
    - Guide auto-registration happens in the same unit as entry creation.
    - An entry is only written to an OPEN sheet.

Failure modes:
    - MissingOpenSheetError: synthesis reached without an OPEN sheet
      (the validator rules this out; reaching it is a consistency fault).
    - LineImbalanceError: a category change whose lines do not balance.

Audit relevance:
    ENTRY_CREATED audit event with the written lines.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import (
    EntryDraft,
    EntryInfo,
    EventSnapshot,
    GuideCheck,
    LineSpec,
    SubjectInfo,
)
from contralor_kernel.domain.event_types import Direction
from contralor_kernel.domain.ledger_synthesis import build_entry_draft
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.exceptions import MissingOpenSheetError
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.ledger import LedgerEntry, LedgerEntryLine, LedgerSheet
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService
from contralor_kernel.services.guide_registry import GuideRegistry
from contralor_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_synthesizer")


class LedgerSynthesizer(BaseService):
    """
    Persists ledger entries.

    Non-goals:
        - Does NOT validate the event; ApprovalService has already done so.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        rules: RegulatoryRules,
        auditor: AuditorService,
        guides: GuideRegistry,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rules
        self._auditor = auditor
        self._guides = guides
        self._sequence_service = SequenceService(session)

    def synthesize(
        self,
        event: EventSnapshot,
        subject: SubjectInfo | None,
        sheet: LedgerSheet | None,
        guide_check: GuideCheck | None,
        actor_id: UUID,
    ) -> LedgerEntry | None:
        """
        Write the entry of an approved event.

        Returns None for non-reportable event types.
        """
        guide_info = guide_check.guide if guide_check is not None else None
        if guide_check is not None and guide_check.auto_register and event.has_guide:
            guide = self._guides.register_if_absent(
                event.guide_series,
                event.guide_number,
                actor_id,
                species=event.species,
                origin_registration=event.origin_registration,
                destination_registration=event.destination_registration,
            )
            guide_info = self._guides.to_info(guide)

        draft = build_entry_draft(event, subject, guide_info, self._rules)
        if draft is None:
            return None

        if sheet is None or not sheet.is_open:
            logger.critical(
                "synthesis_without_open_sheet",
                extra={"event_id": str(event.id), "premise_id": str(event.premise_id)},
            )
            raise MissingOpenSheetError(
                str(event.premise_id), self._rules.sheet_type_for(event.species)
            )

        return self.write_entry(
            sheet=sheet,
            source_event_id=event.id,
            draft=draft,
            guide_id=guide_info.id if guide_info is not None else None,
            actor_id=actor_id,
        )

    def write_entry(
        self,
        sheet: LedgerSheet,
        source_event_id: UUID,
        draft: EntryDraft,
        guide_id: UUID | None,
        actor_id: UUID,
        corrected_entry_id: UUID | None = None,
        correction_reason: str | None = None,
    ) -> LedgerEntry:
        """Persist an entry and its lines from a draft."""
        seq = self._sequence_service.next_value(SequenceService.sheet_entries(sheet.id))

        entry = LedgerEntry(
            sheet_id=sheet.id,
            source_event_id=source_event_id,
            seq=seq,
            entry_date=draft.entry_date,
            operation_label=draft.operation_label,
            registration_code=draft.registration_code,
            guide_id=guide_id,
            origin_registration=draft.origin_registration,
            destination_registration=draft.destination_registration,
            is_voided=False,
            corrected_entry_id=corrected_entry_id,
            correction_reason=correction_reason,
            created_by_id=actor_id,
        )
        self.session.add(entry)

        for line_seq, spec in enumerate(draft.lines, start=1):
            self.session.add(
                LedgerEntryLine(
                    entry=entry,
                    line_seq=line_seq,
                    category_id=spec.category_id,
                    direction=Direction(spec.direction).value,
                    qty_heads=spec.qty_heads,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        self._auditor.record_entry_created(
            entry.id,
            sheet.id,
            source_event_id,
            seq,
            [
                {
                    "category_id": spec.category_id,
                    "direction": Direction(spec.direction).value,
                    "qty_heads": spec.qty_heads,
                }
                for spec in draft.lines
            ],
            actor_id,
        )
        logger.info(
            "entry_created",
            extra={
                "entry_id": str(entry.id),
                "sheet_id": str(sheet.id),
                "source_event_id": str(source_event_id),
                "seq": seq,
                "operation_label": draft.operation_label,
                "line_count": len(draft.lines),
            },
        )
        return entry


def entry_to_info(entry: LedgerEntry) -> EntryInfo:
    """Frozen view of an entry and its lines."""
    return EntryInfo(
        id=entry.id,
        sheet_id=entry.sheet_id,
        source_event_id=entry.source_event_id,
        seq=entry.seq,
        entry_date=entry.entry_date,
        operation_label=entry.operation_label,
        lines=tuple(
            LineSpec(line.category_id, Direction(line.direction), line.qty_heads)
            for line in entry.lines
        ),
        registration_code=entry.registration_code,
        guide_id=entry.guide_id,
        is_voided=entry.is_voided,
        void_reason=entry.void_reason,
        corrected_entry_id=entry.corrected_entry_id,
        correction_reason=entry.correction_reason,
    )
