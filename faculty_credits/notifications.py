"""
Outbound ledger events.

The ledger emits events only after a state change is committed. Delivery
is the notifier's job; a failing notifier is logged and never undoes the
committed change. Every event carries a ``dedupe_key`` so consumers can
ignore redelivery.
"""
import logging
import threading
from collections import OrderedDict, deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from . import config
from .models import CreditEntry

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CREDIT_SUBMITTED = "credit_submitted"
    REMARK_ISSUED = "remark_issued"
    CREDIT_DECIDED = "credit_decided"
    APPEAL_FILED = "appeal_filed"
    APPEAL_DECIDED = "appeal_decided"
    MESSAGE_POSTED = "message_posted"


class Notification(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    recipient_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    dedupe_key: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False


class Notifier(Protocol):
    def send(self, event_type: EventType, recipient_id: str, payload: dict) -> None:
        ...


class InMemoryNotifier:
    """Process-local reference sink with a per-recipient inbox.

    Redelivered events are dropped by dedupe key. Only the last
    ``dedupe_window`` keys are remembered, and each inbox keeps its newest
    ``inbox_limit`` notifications; a durable notifier replaces this in
    deployments that need full history.
    """

    def __init__(self, dedupe_window: int = config.NOTIFICATION_DEDUPE_WINDOW,
                 inbox_limit: int = config.INBOX_LIMIT):
        self.dedupe_window = dedupe_window
        self.inbox_limit = inbox_limit
        self.inboxes: dict[str, deque[Notification]] = {}
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()
        self._lock = threading.Lock()

    def send(self, event_type: EventType, recipient_id: str, payload: dict) -> None:
        dedupe_key = payload.get("dedupe_key") or str(uuid4())
        with self._lock:
            if (recipient_id, dedupe_key) in self._seen:
                return
            self._seen[(recipient_id, dedupe_key)] = None
            if len(self._seen) > self.dedupe_window:
                self._seen.popitem(last=False)
            inbox = self.inboxes.setdefault(recipient_id, deque(maxlen=self.inbox_limit))
            inbox.append(Notification(
                event_type=event_type,
                recipient_id=recipient_id,
                payload=payload,
                dedupe_key=dedupe_key,
            ))

    def inbox(self, recipient_id: str, unread_only: bool = False) -> list[Notification]:
        with self._lock:
            items = list(self.inboxes.get(recipient_id, []))
        if unread_only:
            items = [n for n in items if not n.read]
        return sorted(items, key=lambda n: n.created_at, reverse=True)

    def mark_read(self, recipient_id: str, notification_id: UUID) -> bool:
        with self._lock:
            for n in self.inboxes.get(recipient_id, []):
                if n.id == notification_id:
                    n.read = True
                    return True
        return False

    def mark_all_read(self, recipient_id: str) -> int:
        count = 0
        with self._lock:
            for n in self.inboxes.get(recipient_id, []):
                if not n.read:
                    n.read = True
                    count += 1
        return count


def _entry_payload(entry: CreditEntry) -> dict:
    return {
        "entry_id": str(entry.id),
        "faculty_id": entry.faculty_id,
        "title": entry.title,
        "credit_title": entry.credit_title,
        "points": entry.points,
        "sign": entry.sign.value,
        "status": entry.status.value,
        "academic_year": entry.academic_year,
    }


class NotificationEmitter:
    def __init__(self, notifier: Optional[Notifier] = None, admin_recipient: str = config.ADMIN_RECIPIENT):
        self.notifier = notifier or InMemoryNotifier()
        self.admin_recipient = admin_recipient

    def emit(self, event_type: EventType, recipient_id: str, payload: dict) -> None:
        try:
            self.notifier.send(event_type, recipient_id, payload)
        except Exception:
            logger.exception("Failed to deliver %s to %s", event_type.value, recipient_id)

    def credit_submitted(self, entry: CreditEntry) -> None:
        payload = _entry_payload(entry)
        payload["dedupe_key"] = f"{EventType.CREDIT_SUBMITTED.value}:{entry.id}"
        self.emit(EventType.CREDIT_SUBMITTED, self.admin_recipient, payload)

    def remark_issued(self, entry: CreditEntry) -> None:
        payload = _entry_payload(entry)
        payload["notes"] = entry.notes
        payload["dedupe_key"] = f"{EventType.REMARK_ISSUED.value}:{entry.id}"
        self.emit(EventType.REMARK_ISSUED, entry.faculty_id, payload)

    def credit_decided(self, entry: CreditEntry) -> None:
        payload = _entry_payload(entry)
        payload["decided_by"] = entry.decided_by
        payload["decision_notes"] = entry.decision_notes
        payload["dedupe_key"] = f"{EventType.CREDIT_DECIDED.value}:{entry.id}:{entry.version}"
        self.emit(EventType.CREDIT_DECIDED, entry.faculty_id, payload)

    def appeal_filed(self, entry: CreditEntry) -> None:
        payload = _entry_payload(entry)
        payload["appeal_id"] = str(entry.appeal.id)
        payload["reason"] = entry.appeal.reason
        payload["dedupe_key"] = f"{EventType.APPEAL_FILED.value}:{entry.appeal.id}"
        self.emit(EventType.APPEAL_FILED, self.admin_recipient, payload)

    def appeal_decided(self, entry: CreditEntry, compensating: Optional[CreditEntry] = None) -> None:
        payload = _entry_payload(entry)
        payload["appeal_id"] = str(entry.appeal.id)
        payload["appeal_status"] = entry.appeal.status.value
        payload["decision_notes"] = entry.appeal.decision_notes
        if compensating:
            payload["compensating_entry_id"] = str(compensating.id)
        payload["dedupe_key"] = f"{EventType.APPEAL_DECIDED.value}:{entry.appeal.id}"
        self.emit(EventType.APPEAL_DECIDED, entry.faculty_id, payload)

    def message_posted(self, conversation_id: UUID, entry_id: UUID, message_id: UUID,
                       sender_id: str, recipients: list[str], text: str) -> None:
        for recipient in recipients:
            self.emit(EventType.MESSAGE_POSTED, recipient, {
                "conversation_id": str(conversation_id),
                "entry_id": str(entry_id),
                "message_id": str(message_id),
                "sender_id": sender_id,
                "text": text,
                "dedupe_key": f"{EventType.MESSAGE_POSTED.value}:{message_id}",
            })
