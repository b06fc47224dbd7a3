import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from .errors import InvalidStateError, NotFoundError, ValidationError
from .identity import Actor, Role, require_role
from .models import CreateCreditTitleRequest, CreditSign, CreditTitle, UpdateCreditTitleRequest
from .storage import InMemoryStorage, LedgerStorage

logger = logging.getLogger(__name__)


def _checked_title(request) -> str:
    title = (request.title or "").strip()
    if not title:
        raise ValidationError("Title must not be blank")
    if request.points == 0:
        raise ValidationError("Points must be nonzero")
    if (request.points > 0) != (request.sign == CreditSign.POSITIVE):
        raise ValidationError(
            f"Points {request.points} do not match sign '{request.sign.value}'"
        )
    return title


class CreditTitleCatalog:
    """Append-only set of credit categories.

    Titles are never deleted; ``deactivate`` only hides a title from new
    submissions. A title can be edited until the first entry references
    it; after that only deactivation is allowed. Entries keep their own
    copy of title text and points.
    """

    def __init__(self, storage: Optional[LedgerStorage] = None):
        self.storage = storage or InMemoryStorage()

    def create_title(self, actor: Actor, request: CreateCreditTitleRequest) -> CreditTitle:
        require_role(actor, Role.ADMIN, "Creating a credit title")
        title = _checked_title(request)

        record = {
            "id": uuid4(),
            "title": title,
            "points": request.points,
            "sign": request.sign,
            "description": (request.description or "").strip(),
            "active": True,
            "created_at": datetime.now(timezone.utc),
            "created_by": actor.actor_id,
        }
        self.storage.insert_title(record, unique_active_title=True)
        logger.info("Credit title %s created by %s (%+d)", record["id"], actor.actor_id, request.points)
        return CreditTitle(**record)

    def update_title(self, actor: Actor, title_id: UUID, request: UpdateCreditTitleRequest) -> CreditTitle:
        require_role(actor, Role.ADMIN, "Editing a credit title")
        record = self.storage.get_title(title_id)
        if not record:
            raise NotFoundError(f"Credit title {title_id} not found")
        if not record["active"]:
            raise InvalidStateError(f"Credit title {title_id} is deactivated")

        record.update(
            title=_checked_title(request),
            points=request.points,
            sign=request.sign,
            description=(request.description or "").strip(),
        )
        self.storage.replace_title(record, unique_active_title=True, require_unreferenced=True)
        logger.info("Credit title %s edited by %s (%+d)", title_id, actor.actor_id, request.points)
        return CreditTitle(**record)

    def deactivate(self, actor: Actor, title_id: UUID) -> CreditTitle:
        require_role(actor, Role.ADMIN, "Deactivating a credit title")
        record = self.storage.get_title(title_id)
        if not record:
            raise NotFoundError(f"Credit title {title_id} not found")
        if record["active"]:
            record["active"] = False
            self.storage.replace_title(record)
            logger.info("Credit title %s deactivated by %s", title_id, actor.actor_id)
        return CreditTitle(**record)

    def get(self, title_id: UUID) -> CreditTitle:
        record = self.storage.get_title(title_id)
        if not record:
            raise NotFoundError(f"Credit title {title_id} not found")
        return CreditTitle(**record)

    def list(self, sign: Optional[CreditSign] = None, active_only: bool = True) -> list[CreditTitle]:
        titles = [CreditTitle(**r) for r in self.storage.list_titles()]
        if sign:
            titles = [t for t in titles if t.sign == sign]
        if active_only:
            titles = [t for t in titles if t.active]
        return titles

    def resolve_active(self, title_id: UUID, sign: CreditSign) -> CreditTitle:
        """Look up a title that new entries may use."""
        title = self.get(title_id)
        if not title.active:
            raise ValidationError(f"Credit title '{title.title}' is no longer active")
        if title.sign != sign:
            raise ValidationError(
                f"Credit title '{title.title}' is {title.sign.value}, expected {sign.value}"
            )
        return title
