import logging
from datetime import datetime, timezone
from typing import Callable, NoReturn, Optional
from uuid import UUID, uuid4

from . import config
from .academic_year import parse_academic_year
from .catalog import CreditTitleCatalog
from .errors import (
    AuthorizationError,
    ConflictError,
    CreditLedgerError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .identity import Actor, Role, require_role
from .models import (
    Appeal,
    AppealDecisionRequest,
    AppealOutcome,
    AppealStatus,
    CreditEntry,
    CreditSign,
    DecisionOutcome,
    DecisionRequest,
    EntryKind,
    EntryResponse,
    EntryStatus,
    FileAppealRequest,
    IssueNegativeRequest,
    SubmitPositiveRequest,
)
from .notifications import NotificationEmitter
from .storage import InMemoryStorage, LedgerStorage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerService:
    """Credit entry lifecycle.

    pending -> approved | rejected (admin decision)
    approved (negative only) -> appealed (faculty appeal)
    appealed -> appeal_accepted (plus a compensating entry) | approved

    Every write goes through ``storage.commit`` with the version that was
    read, so two writers racing on one entry cannot both succeed.
    Notifications go out only after the commit returns.
    """

    def __init__(
        self,
        storage: Optional[LedgerStorage] = None,
        catalog: Optional[CreditTitleCatalog] = None,
        emitter: Optional[NotificationEmitter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage or InMemoryStorage()
        self.catalog = catalog or CreditTitleCatalog(self.storage)
        self.emitter = emitter or NotificationEmitter()
        self.clock = clock or _utcnow

    def submit_positive(self, actor: Actor, request: SubmitPositiveRequest) -> CreditEntry:
        require_role(actor, Role.FACULTY, "Submitting good work")
        title = (request.title or "").strip()
        if not title:
            self._fail(ValidationError("Submission title must not be blank"))

        credit_title = self.catalog.resolve_active(request.credit_title_id, CreditSign.POSITIVE)
        record = self._new_entry_record(
            faculty_id=actor.actor_id,
            created_by=actor.actor_id,
            credit_title=credit_title,
            title=title,
            academic_year=parse_academic_year(request.academic_year),
            proof_ref=request.proof_ref,
            notes=request.notes,
        )
        entry = CreditEntry(**self._commit(inserts=[record])[0])
        logger.info("Entry %s submitted by %s (%+d, %s)", entry.id, actor.actor_id, entry.points, entry.academic_year)

        self.emitter.credit_submitted(entry)
        return entry

    def issue_negative(self, actor: Actor, request: IssueNegativeRequest) -> CreditEntry:
        require_role(actor, Role.ADMIN, "Issuing a remark")
        faculty_id = (request.faculty_id or "").strip()
        if not faculty_id:
            self._fail(ValidationError("Faculty id is required"))

        credit_title = self.catalog.resolve_active(request.credit_title_id, CreditSign.NEGATIVE)
        record = self._new_entry_record(
            faculty_id=faculty_id,
            created_by=actor.actor_id,
            credit_title=credit_title,
            title=credit_title.title,
            academic_year=parse_academic_year(request.academic_year),
            proof_ref=request.proof_ref,
            notes=request.notes,
        )
        entry = CreditEntry(**self._commit(inserts=[record])[0])
        logger.info("Remark %s issued to %s by %s (%+d)", entry.id, faculty_id, actor.actor_id, entry.points)

        self.emitter.remark_issued(entry)
        return entry

    def decide(self, entry_id: UUID, actor: Actor, request: DecisionRequest) -> CreditEntry:
        require_role(actor, Role.ADMIN, "Deciding an entry")
        entry = self.get_entry(entry_id)
        self._check_version(entry, request.expected_version)
        if not entry.can_decide():
            self._fail(InvalidStateError(f"Cannot decide entry in {entry.status.value} state"))

        now = self.clock()
        record = entry.model_dump()
        record["status"] = (
            EntryStatus.APPROVED if request.outcome == DecisionOutcome.APPROVED else EntryStatus.REJECTED
        )
        record["decided_at"] = now
        record["decided_by"] = actor.actor_id
        record["decision_notes"] = request.notes

        decided = CreditEntry(**self._commit(updates=[(record, entry.version)])[0])
        logger.info("Entry %s: pending -> %s by %s", entry_id, decided.status.value, actor.actor_id)

        self.emitter.credit_decided(decided)
        return decided

    def file_appeal(self, entry_id: UUID, actor: Actor, request: FileAppealRequest) -> Appeal:
        require_role(actor, Role.FACULTY, "Filing an appeal")
        entry = self.get_entry(entry_id)
        if entry.faculty_id != actor.actor_id:
            self._fail(AuthorizationError(
                f"Faculty {actor.actor_id} cannot appeal entry {entry_id} of {entry.faculty_id}"
            ))
        self._check_version(entry, request.expected_version)

        if entry.sign != CreditSign.NEGATIVE or entry.kind != EntryKind.STANDARD:
            self._fail(InvalidStateError("Only negative remarks can be appealed"))
        if entry.appeal is not None and entry.appeal.is_active():
            self._fail(ConflictError("Appeal already pending", user_message="An appeal for this remark is already pending."))
        if entry.appeal is not None:
            self._fail(InvalidStateError(f"Appeal for entry {entry_id} was already {entry.appeal.status.value}"))
        if entry.status != EntryStatus.APPROVED:
            self._fail(InvalidStateError(f"Cannot appeal entry in {entry.status.value} state"))

        reason = (request.reason or "").strip()
        if len(reason) < config.APPEAL_REASON_MIN_LENGTH:
            self._fail(ValidationError(
                f"Appeal reason must be at least {config.APPEAL_REASON_MIN_LENGTH} characters"
            ))

        appeal = {
            "id": uuid4(),
            "credit_entry_id": entry.id,
            "reason": reason,
            "proof_ref": request.proof_ref,
            "status": AppealStatus.PENDING,
            "created_at": self.clock(),
            "decided_at": None,
            "decided_by": None,
            "decision_notes": None,
        }
        record = entry.model_dump()
        record["status"] = EntryStatus.APPEALED
        record["appeal"] = appeal

        appealed = CreditEntry(**self._commit(updates=[(record, entry.version)])[0])
        logger.info("Entry %s: approved -> appealed by %s (appeal %s)", entry_id, actor.actor_id, appeal["id"])

        self.emitter.appeal_filed(appealed)
        return appealed.appeal

    def decide_appeal(self, entry_id: UUID, actor: Actor, request: AppealDecisionRequest) -> EntryResponse:
        require_role(actor, Role.ADMIN, "Deciding an appeal")
        entry = self.get_entry(entry_id)
        self._check_version(entry, request.expected_version)
        if entry.status != EntryStatus.APPEALED or entry.appeal is None:
            self._fail(InvalidStateError(f"Cannot decide appeal for entry in {entry.status.value} state"))

        now = self.clock()
        record = entry.model_dump()
        record["appeal"]["decided_at"] = now
        record["appeal"]["decided_by"] = actor.actor_id
        record["appeal"]["decision_notes"] = request.decision_notes

        inserts = []
        if request.outcome == AppealOutcome.ACCEPTED:
            record["status"] = EntryStatus.APPEAL_ACCEPTED
            record["appeal"]["status"] = AppealStatus.ACCEPTED
            inserts.append(self._compensating_record(entry, actor, now, request.decision_notes))
        else:
            record["status"] = EntryStatus.APPROVED
            record["appeal"]["status"] = AppealStatus.REJECTED

        committed = self._commit(updates=[(record, entry.version)], inserts=inserts)
        decided = CreditEntry(**committed[0])
        compensating = CreditEntry(**committed[1]) if inserts else None
        logger.info("Entry %s: appealed -> %s by %s", entry_id, decided.status.value, actor.actor_id)

        self.emitter.appeal_decided(decided, compensating)
        return EntryResponse(
            entry=decided,
            compensating_entry=compensating,
            message=f"Appeal {decided.appeal.status.value}",
        )

    def get_entry(self, entry_id: UUID) -> CreditEntry:
        record = self.storage.get_entry(entry_id)
        if not record:
            self._fail(NotFoundError(f"Credit entry {entry_id} not found"))
        return CreditEntry(**record)

    def list_entries(
        self,
        faculty_id: Optional[str] = None,
        status: Optional[EntryStatus] = None,
        academic_year: Optional[str] = None,
        sign: Optional[CreditSign] = None,
    ) -> list[CreditEntry]:
        if academic_year:
            academic_year = parse_academic_year(academic_year)
        entries = [
            CreditEntry(**r) for r in self.storage.list_entries(faculty_id, status, academic_year, sign)
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    def _new_entry_record(self, faculty_id, created_by, credit_title, title, academic_year, proof_ref, notes) -> dict:
        return {
            "id": uuid4(),
            "faculty_id": faculty_id,
            "kind": EntryKind.STANDARD,
            "credit_title_id": credit_title.id,
            "credit_title": credit_title.title,
            "points": credit_title.points,
            "sign": credit_title.sign,
            "title": title,
            "academic_year": academic_year,
            "proof_ref": proof_ref,
            "notes": notes,
            "status": EntryStatus.PENDING,
            "created_by": created_by,
            "created_at": self.clock(),
            "decided_at": None,
            "decided_by": None,
            "decision_notes": None,
            "reference_entry_id": None,
            "appeal": None,
            "version": 1,
        }

    def _compensating_record(self, original: CreditEntry, actor: Actor, now: datetime, notes: Optional[str]) -> dict:
        return {
            "id": uuid4(),
            "faculty_id": original.faculty_id,
            "kind": EntryKind.COMPENSATING,
            "credit_title_id": original.credit_title_id,
            "credit_title": f"Appeal accepted: {original.credit_title}",
            "points": abs(original.points),
            "sign": CreditSign.POSITIVE,
            "title": original.title,
            "academic_year": original.academic_year,
            "proof_ref": original.appeal.proof_ref if original.appeal else None,
            "notes": notes,
            "status": EntryStatus.APPROVED,
            "created_by": actor.actor_id,
            "created_at": now,
            "decided_at": now,
            "decided_by": actor.actor_id,
            "decision_notes": notes,
            "reference_entry_id": original.id,
            "appeal": None,
            "version": 1,
        }

    def _check_version(self, entry: CreditEntry, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != entry.version:
            self._fail(ConflictError(
                f"Entry {entry.id} is at version {entry.version}, caller expected {expected_version}"
            ))

    def _commit(self, updates=(), inserts=()) -> list[dict]:
        try:
            return self.storage.commit(updates=updates, inserts=inserts)
        except ConflictError as e:
            self._fail(e)

    def _fail(self, error: CreditLedgerError) -> NoReturn:
        logger.warning("%s: %s", type(error).__name__, error)
        raise error
