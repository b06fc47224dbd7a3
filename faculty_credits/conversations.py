import logging
import threading
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .errors import AuthorizationError, NotFoundError, ValidationError
from .identity import Actor
from .notifications import NotificationEmitter
from .service import LedgerService

logger = logging.getLogger(__name__)


class Message(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: str
    text: str
    created_at: datetime


class Conversation(BaseModel):
    id: UUID
    entry_id: UUID
    entry_title: str
    academic_year: str
    participant_ids: list[str]
    created_at: datetime
    updated_at: datetime
    total_messages: int = 0
    last_message: Optional[Message] = None


class StartConversationRequest(BaseModel):
    entry_id: UUID
    participant_ids: list[str] = Field(default_factory=list)


class PostMessageRequest(BaseModel):
    text: str


class ConversationService:
    """Message threads attached to a single credit entry, one thread per entry."""

    def __init__(self, ledger: LedgerService, emitter: Optional[NotificationEmitter] = None):
        self.ledger = ledger
        self.emitter = emitter or ledger.emitter
        self.conversations: dict[UUID, dict] = {}
        self.messages: dict[UUID, list[dict]] = {}
        self._by_entry: dict[UUID, UUID] = {}
        self._lock = threading.Lock()

    def start(self, actor: Actor, request: StartConversationRequest) -> Conversation:
        entry = self.ledger.get_entry(request.entry_id)
        if not actor.is_admin and actor.actor_id != entry.faculty_id:
            raise AuthorizationError(
                f"{actor.actor_id} cannot start a conversation on entry {entry.id}"
            )

        participants = [entry.faculty_id, actor.actor_id]
        for pid in request.participant_ids:
            pid = pid.strip()
            if pid and pid not in participants:
                participants.append(pid)

        with self._lock:
            existing = self._by_entry.get(entry.id)
            if existing:
                return self._to_model(self.conversations[existing])

            now = datetime.now(timezone.utc)
            record = {
                "id": uuid4(),
                "entry_id": entry.id,
                "entry_title": entry.title,
                "academic_year": entry.academic_year,
                "participant_ids": participants,
                "created_at": now,
                "updated_at": now,
            }
            self.conversations[record["id"]] = record
            self.messages[record["id"]] = []
            self._by_entry[entry.id] = record["id"]

        logger.info("Conversation %s started on entry %s by %s", record["id"], entry.id, actor.actor_id)
        return self._to_model(record)

    def post_message(self, actor: Actor, conversation_id: UUID, request: PostMessageRequest) -> Message:
        text = (request.text or "").strip()
        if not text:
            raise ValidationError("Message text must not be blank")

        with self._lock:
            record = self._get_for(actor, conversation_id)
            now = datetime.now(timezone.utc)
            message = {
                "id": uuid4(),
                "conversation_id": conversation_id,
                "sender_id": actor.actor_id,
                "text": text,
                "created_at": now,
            }
            self.messages[conversation_id].append(message)
            record["updated_at"] = now
            recipients = [p for p in record["participant_ids"] if p != actor.actor_id]
            entry_id = record["entry_id"]

        self.emitter.message_posted(conversation_id, entry_id, message["id"], actor.actor_id, recipients, text)
        return Message(**message)

    def list_messages(self, actor: Actor, conversation_id: UUID, limit: int = 100) -> list[Message]:
        with self._lock:
            self._get_for(actor, conversation_id)
            items = list(self.messages[conversation_id])
        return [Message(**m) for m in items[-limit:]] if limit > 0 else []

    def list_for(self, actor: Actor) -> list[Conversation]:
        with self._lock:
            mine = [
                self._to_model(r) for r in self.conversations.values()
                if actor.actor_id in r["participant_ids"]
            ]
        return sorted(mine, key=lambda c: c.updated_at, reverse=True)

    def _get_for(self, actor: Actor, conversation_id: UUID) -> dict:
        record = self.conversations.get(conversation_id)
        if not record:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if actor.actor_id not in record["participant_ids"]:
            raise AuthorizationError(f"{actor.actor_id} is not part of conversation {conversation_id}")
        return record

    def _to_model(self, record: dict) -> Conversation:
        messages = self.messages.get(record["id"], [])
        return Conversation(
            **record,
            total_messages=len(messages),
            last_message=Message(**messages[-1]) if messages else None,
        )
