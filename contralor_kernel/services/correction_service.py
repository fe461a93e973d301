"""
CorrectionService -- voids and forward-only corrections of ledger entries.

Responsibility:
    Voids an entry (excluding it from every later balance) and creates
    corrective entries that void the original and append a replacement
    pointing back to it.  Walks amendment chains.

Architecture position:
    Kernel > Services -- imperative shell.  Writes through
    LedgerSynthesizer.write_entry so corrections get sequence numbers and
    audit events exactly like synthesized entries.

Invariants enforced:
    - An entry is voided at most once; voided entries stay in storage.
    - void original -> write correction runs in one savepoint.
    - A correction copies every field not overridden, and clones the
      original lines when no lines are supplied.
    - A category change correction keeps one OUT and one IN line of equal
      heads.
    - Entries of a CLOSED sheet are never voided or corrected.

Failure modes:
    - EntryNotFoundError, EntryAlreadyVoidedError, SheetClosedError.
    - InvalidCorrectionError: malformed replacement lines or a date
      outside the sheet period.
    - CategoryNotFoundError: a replacement line names an unknown category.
    - CorrectionCycleError: an amendment chain loops.

Audit relevance:
    ENTRY_VOIDED for every void; ENTRY_CORRECTED linking original and
    replacement; ENTRY_CREATED for the replacement.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import (
    CorrectionRequest,
    EntryDraft,
    EntryInfo,
    LineSpec,
)
from contralor_kernel.domain.event_types import Direction, EventType
from contralor_kernel.domain.ledger_synthesis import check_line_balance
from contralor_kernel.exceptions import (
    CategoryNotFoundError,
    CorrectionCycleError,
    EntryAlreadyVoidedError,
    EntryNotFoundError,
    InvalidCorrectionError,
    LineImbalanceError,
    SheetClosedError,
)
from contralor_kernel.logging_config import LogContext, get_logger
from contralor_kernel.models.ledger import LedgerEntry, LedgerSheet
from contralor_kernel.models.reference import Category
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService
from contralor_kernel.services.ledger_synthesizer import LedgerSynthesizer, entry_to_info
from contralor_kernel.services.sheet_service import SheetService

logger = get_logger("services.correction")


class CorrectionService(BaseService):
    """
    Void and correction manager.

    Contract:
        Both operations lock the entry and its sheet row, so they serialize
        with closing of that sheet.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT re-validate the source event; corrections are register
          amendments, not new approvals.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        sheets: SheetService,
        synthesizer: LedgerSynthesizer,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor
        self._sheets = sheets
        self._synthesizer = synthesizer

    def _lock_entry(self, entry_id: UUID) -> LedgerEntry:
        return self._load(LedgerEntry, entry_id, EntryNotFoundError, lock=True)

    def _lock_writable(self, entry_id: UUID, operation: str) -> tuple[LedgerEntry, LedgerSheet]:
        entry = self._lock_entry(entry_id)
        sheet = self._sheets.lock_sheet(entry.sheet_id)
        if sheet.is_closed:
            logger.warning(
                "entry_change_on_closed_sheet",
                extra={"operation": operation, "sheet_id": str(sheet.id)},
            )
            raise SheetClosedError(str(sheet.id), operation)
        if entry.is_voided:
            logger.warning("entry_already_voided", extra={"operation": operation})
            raise EntryAlreadyVoidedError(str(entry_id))
        return entry, sheet

    def _void(self, entry: LedgerEntry, reason: str, actor_id: UUID) -> None:
        entry.is_voided = True
        entry.void_reason = reason
        entry.voided_at = self._clock.now()
        entry.voided_by_id = actor_id
        entry.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_entry_voided(entry.id, reason, actor_id)
        logger.info(
            "entry_voided",
            extra={"seq": entry.seq, "reason": reason},
        )

    def void_entry(self, entry_id: UUID, reason: str, actor_id: UUID) -> EntryInfo:
        """
        Void an entry; it stays stored but no longer counts in balances.

        Raises:
            EntryNotFoundError: Unknown entry.
            SheetClosedError: The entry's sheet is CLOSED.
            EntryAlreadyVoidedError: The entry is already voided.
            InvalidCorrectionError: Empty reason.
        """
        with LogContext.bind(entry_id=entry_id, actor_id=actor_id):
            if not reason or not reason.strip():
                raise InvalidCorrectionError(str(entry_id), "a void reason is required")
            entry, _ = self._lock_writable(entry_id, "void entry")
            with self.session.begin_nested():
                self._void(entry, reason, actor_id)
            return entry_to_info(entry)

    def create_correction(
        self,
        original_entry_id: UUID,
        request: CorrectionRequest | None,
        reason: str,
        actor_id: UUID,
    ) -> EntryInfo:
        """
        Void ``original_entry_id`` and append its replacement.

        The original's void reason is the correction reason.  Fields of
        ``request`` left as None are copied from the original; without
        ``request.lines`` the original lines are cloned unmodified.

        Raises:
            EntryNotFoundError, SheetClosedError, EntryAlreadyVoidedError,
            InvalidCorrectionError, CategoryNotFoundError.
        """
        with LogContext.bind(entry_id=original_entry_id, actor_id=actor_id):
            if not reason or not reason.strip():
                raise InvalidCorrectionError(
                    str(original_entry_id), "a correction reason is required"
                )
            original, sheet = self._lock_writable(original_entry_id, "correct entry")
            request = request or CorrectionRequest()

            lines = request.lines
            if lines is None:
                lines = tuple(
                    LineSpec(line.category_id, Direction(line.direction), line.qty_heads)
                    for line in original.lines
                )
            self._check_lines(original, lines)

            entry_date = request.entry_date or original.entry_date
            if not sheet.period_start <= entry_date <= sheet.period_end:
                raise InvalidCorrectionError(
                    str(original.id),
                    f"entry date {entry_date} is outside the sheet period "
                    f"{sheet.period_start}..{sheet.period_end}",
                )

            draft = EntryDraft(
                operation_label=request.operation_label or original.operation_label,
                entry_date=entry_date,
                lines=tuple(lines),
                registration_code=_pick(request.registration_code, original.registration_code),
                origin_registration=_pick(
                    request.origin_registration, original.origin_registration
                ),
                destination_registration=_pick(
                    request.destination_registration, original.destination_registration
                ),
            )

            with self.session.begin_nested():
                self._void(original, reason, actor_id)
                correction = self._synthesizer.write_entry(
                    sheet=sheet,
                    source_event_id=original.source_event_id,
                    draft=draft,
                    guide_id=_pick(request.guide_id, original.guide_id),
                    actor_id=actor_id,
                    corrected_entry_id=original.id,
                    correction_reason=reason,
                )
                self._auditor.record_entry_corrected(
                    original.id, correction.id, reason, actor_id
                )

            logger.info(
                "entry_corrected",
                extra={
                    "original_entry_id": str(original.id),
                    "correction_entry_id": str(correction.id),
                    "line_count": len(draft.lines),
                },
            )
            return entry_to_info(correction)

    def _check_lines(self, original: LedgerEntry, lines: tuple[LineSpec, ...]) -> None:
        if not lines:
            raise InvalidCorrectionError(str(original.id), "a correction needs lines")

        if original.operation_label == EventType.CATEGORY_CHANGE.value:
            directions = sorted(Direction(line.direction).value for line in lines)
            if directions != [Direction.IN.value, Direction.OUT.value]:
                raise InvalidCorrectionError(
                    str(original.id),
                    "a category change needs exactly one OUT and one IN line",
                )
            try:
                check_line_balance(lines)
            except LineImbalanceError as exc:
                raise InvalidCorrectionError(str(original.id), str(exc)) from exc

        wanted = {line.category_id for line in lines}
        found = set(
            self.session.execute(
                select(Category.id).where(Category.id.in_(wanted))
            ).scalars()
        )
        missing = sorted(wanted - found, key=str)
        if missing:
            raise CategoryNotFoundError(str(missing[0]))

    def get_amendment_chain(self, entry_id: UUID) -> tuple[EntryInfo, ...]:
        """
        The amendment chain through ``entry_id``, root first.

        Raises:
            EntryNotFoundError: Unknown entry.
            CorrectionCycleError: The chain loops.
        """
        entry = self._load(LedgerEntry, entry_id, EntryNotFoundError)

        seen: set[UUID] = {entry.id}
        root = entry
        while root.corrected_entry_id is not None:
            root = self.session.get(LedgerEntry, root.corrected_entry_id)
            if root.id in seen:
                logger.critical("correction_cycle_detected", extra={"entry_id": str(entry_id)})
                raise CorrectionCycleError(str(entry_id))
            seen.add(root.id)

        chain = [root]
        visited: set[UUID] = {root.id}
        current = root
        while True:
            successor = self.session.execute(
                select(LedgerEntry).where(LedgerEntry.corrected_entry_id == current.id)
            ).scalar_one_or_none()
            if successor is None:
                break
            if successor.id in visited:
                logger.critical("correction_cycle_detected", extra={"entry_id": str(entry_id)})
                raise CorrectionCycleError(str(entry_id))
            visited.add(successor.id)
            chain.append(successor)
            current = successor

        return tuple(entry_to_info(e) for e in chain)


def _pick(override, original):
    return override if override is not None else original
