"""
Tests for post-commit notifications and entry conversations.
"""

import pytest

from faculty_credits.conversations import ConversationService, PostMessageRequest, StartConversationRequest
from faculty_credits.errors import AuthorizationError, InvalidStateError, ValidationError
from faculty_credits.identity import Actor, Role
from faculty_credits.models import (
    AppealDecisionRequest,
    AppealOutcome,
    CreateCreditTitleRequest,
    CreditSign,
    DecisionOutcome,
    DecisionRequest,
    EntryStatus,
    FileAppealRequest,
    IssueNegativeRequest,
    SubmitPositiveRequest,
)
from faculty_credits.notifications import EventType, InMemoryNotifier, NotificationEmitter
from faculty_credits.service import LedgerService


ADMIN = Actor(actor_id="admin-1", role=Role.ADMIN)
FACULTY = Actor(actor_id="fac-1", role=Role.FACULTY)
OTHER_FACULTY = Actor(actor_id="fac-2", role=Role.FACULTY)
APPEAL_REASON = "I was on approved medical leave that week."


class BrokenNotifier:
    def __init__(self):
        self.calls = 0

    def send(self, event_type, recipient_id, payload):
        self.calls += 1
        raise RuntimeError("SMTP relay unreachable")


def _setup(notifier=None):
    notifier = notifier or InMemoryNotifier()
    service = LedgerService(emitter=NotificationEmitter(notifier, admin_recipient="admins"))
    paper = service.catalog.create_title(ADMIN, CreateCreditTitleRequest(
        title="Journal paper", points=10, sign=CreditSign.POSITIVE,
    ))
    late = service.catalog.create_title(ADMIN, CreateCreditTitleRequest(
        title="Late submission", points=-5, sign=CreditSign.NEGATIVE,
    ))
    return service, notifier, paper, late


def _event_types(notifier, recipient):
    return [n.event_type for n in sorted(notifier.inbox(recipient), key=lambda n: n.created_at)]


class TestLedgerEvents:

    def test_submission_and_decision_events(self):
        service, notifier, paper, _ = _setup()
        entry = service.submit_positive(FACULTY, SubmitPositiveRequest(
            credit_title_id=paper.id, academic_year="2024-2025", title="Paper",
        ))
        service.decide(entry.id, ADMIN, DecisionRequest(outcome=DecisionOutcome.APPROVED))

        assert _event_types(notifier, "admins") == [EventType.CREDIT_SUBMITTED]
        assert _event_types(notifier, FACULTY.actor_id) == [EventType.CREDIT_DECIDED]
        decided = notifier.inbox(FACULTY.actor_id)[0]
        assert decided.payload["entry_id"] == str(entry.id)
        assert decided.payload["status"] == "approved"

    def test_appeal_flow_events(self):
        service, notifier, _, late = _setup()
        remark = service.issue_negative(ADMIN, IssueNegativeRequest(
            faculty_id=FACULTY.actor_id, credit_title_id=late.id, academic_year="2024-2025",
        ))
        service.decide(remark.id, ADMIN, DecisionRequest(outcome=DecisionOutcome.APPROVED))
        appeal = service.file_appeal(remark.id, FACULTY, FileAppealRequest(reason=APPEAL_REASON))
        service.decide_appeal(remark.id, ADMIN, AppealDecisionRequest(outcome=AppealOutcome.ACCEPTED))

        assert _event_types(notifier, FACULTY.actor_id) == [
            EventType.REMARK_ISSUED, EventType.CREDIT_DECIDED, EventType.APPEAL_DECIDED,
        ]
        admin_events = notifier.inbox("admins")
        assert [n.event_type for n in admin_events] == [EventType.APPEAL_FILED]
        assert admin_events[0].payload["appeal_id"] == str(appeal.id)
        decided = [n for n in notifier.inbox(FACULTY.actor_id) if n.event_type == EventType.APPEAL_DECIDED][0]
        assert decided.payload["appeal_status"] == "accepted"
        assert "compensating_entry_id" in decided.payload

    def test_failed_rejection_emits_nothing(self):
        service, notifier, paper, _ = _setup()
        entry = service.submit_positive(FACULTY, SubmitPositiveRequest(
            credit_title_id=paper.id, academic_year="2024-2025", title="Paper",
        ))
        service.decide(entry.id, ADMIN, DecisionRequest(outcome=DecisionOutcome.APPROVED))

        with pytest.raises(InvalidStateError):
            service.decide(entry.id, ADMIN, DecisionRequest(outcome=DecisionOutcome.APPROVED))

        assert len(notifier.inbox(FACULTY.actor_id)) == 1

    def test_notifier_failure_does_not_roll_back(self):
        """Test that a delivery failure leaves the committed decision in place."""
        notifier = BrokenNotifier()
        service, _, paper, _ = _setup(notifier)
        entry = service.submit_positive(FACULTY, SubmitPositiveRequest(
            credit_title_id=paper.id, academic_year="2024-2025", title="Paper",
        ))

        decided = service.decide(entry.id, ADMIN, DecisionRequest(outcome=DecisionOutcome.APPROVED))

        assert decided.status == EntryStatus.APPROVED
        assert service.get_entry(entry.id).status == EntryStatus.APPROVED
        assert notifier.calls == 2


class TestInbox:

    def test_redelivery_is_ignored(self):
        notifier = InMemoryNotifier()
        payload = {"entry_id": "e-1", "dedupe_key": "credit_decided:e-1:2"}

        notifier.send(EventType.CREDIT_DECIDED, FACULTY.actor_id, payload)
        notifier.send(EventType.CREDIT_DECIDED, FACULTY.actor_id, payload)

        assert len(notifier.inbox(FACULTY.actor_id)) == 1

    def test_read_tracking(self):
        notifier = InMemoryNotifier()
        notifier.send(EventType.REMARK_ISSUED, FACULTY.actor_id, {"dedupe_key": "a"})
        notifier.send(EventType.CREDIT_DECIDED, FACULTY.actor_id, {"dedupe_key": "b"})

        first = notifier.inbox(FACULTY.actor_id)[0]
        assert notifier.mark_read(FACULTY.actor_id, first.id) is True
        assert len(notifier.inbox(FACULTY.actor_id, unread_only=True)) == 1
        assert notifier.mark_all_read(FACULTY.actor_id) == 1
        assert notifier.inbox(FACULTY.actor_id, unread_only=True) == []

    def test_inbox_and_dedupe_memory_are_bounded(self):
        notifier = InMemoryNotifier(dedupe_window=2, inbox_limit=2)
        for key in ("a", "b", "c"):
            notifier.send(EventType.REMARK_ISSUED, FACULTY.actor_id, {"dedupe_key": key})

        assert sorted(n.dedupe_key for n in notifier.inbox(FACULTY.actor_id)) == ["b", "c"]
        assert len(notifier._seen) == 2

        # "a" fell out of the window, so it is accepted again
        notifier.send(EventType.REMARK_ISSUED, FACULTY.actor_id, {"dedupe_key": "a"})
        notifier.send(EventType.REMARK_ISSUED, FACULTY.actor_id, {"dedupe_key": "c"})

        assert sorted(n.dedupe_key for n in notifier.inbox(FACULTY.actor_id)) == ["a", "c"]


class TestConversations:

    def _remark(self, service, late):
        return service.issue_negative(ADMIN, IssueNegativeRequest(
            faculty_id=FACULTY.actor_id, credit_title_id=late.id, academic_year="2024-2025",
        ))

    def test_start_is_idempotent_per_entry(self):
        service, _, _, late = _setup()
        conversations = ConversationService(service)
        remark = self._remark(service, late)

        first = conversations.start(ADMIN, StartConversationRequest(entry_id=remark.id))
        second = conversations.start(FACULTY, StartConversationRequest(entry_id=remark.id))

        assert first.id == second.id
        assert first.participant_ids == [FACULTY.actor_id, ADMIN.actor_id]
        assert first.entry_title == "Late submission"

    def test_outsider_cannot_start(self):
        service, _, _, late = _setup()
        conversations = ConversationService(service)
        remark = self._remark(service, late)

        with pytest.raises(AuthorizationError):
            conversations.start(OTHER_FACULTY, StartConversationRequest(entry_id=remark.id))

    def test_messages_notify_other_participants(self):
        service, notifier, _, late = _setup()
        conversations = ConversationService(service)
        remark = self._remark(service, late)
        conversation = conversations.start(ADMIN, StartConversationRequest(entry_id=remark.id))

        conversations.post_message(ADMIN, conversation.id, PostMessageRequest(text="Can you share the mail?"))
        conversations.post_message(FACULTY, conversation.id, PostMessageRequest(text="Uploaded it now."))

        messages = conversations.list_messages(FACULTY, conversation.id)
        assert [m.sender_id for m in messages] == [ADMIN.actor_id, FACULTY.actor_id]
        assert EventType.MESSAGE_POSTED in _event_types(notifier, FACULTY.actor_id)
        assert EventType.MESSAGE_POSTED in _event_types(notifier, ADMIN.actor_id)

        listed = conversations.list_for(FACULTY)
        assert listed[0].total_messages == 2
        assert listed[0].last_message.text == "Uploaded it now."

    def test_blank_message_rejected(self):
        service, _, _, late = _setup()
        conversations = ConversationService(service)
        conversation = conversations.start(ADMIN, StartConversationRequest(entry_id=self._remark(service, late).id))

        with pytest.raises(ValidationError):
            conversations.post_message(ADMIN, conversation.id, PostMessageRequest(text="  "))

    def test_non_participant_cannot_read(self):
        service, _, _, late = _setup()
        conversations = ConversationService(service)
        conversation = conversations.start(ADMIN, StartConversationRequest(entry_id=self._remark(service, late).id))

        with pytest.raises(AuthorizationError):
            conversations.list_messages(OTHER_FACULTY, conversation.id)
