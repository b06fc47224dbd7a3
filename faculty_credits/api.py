import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from advisor import CreditRecommendation, CreditRecommender

from . import config
from .academic_year import current_academic_year, year_options
from .balance import BalanceAggregator
from .catalog import CreditTitleCatalog
from .conversations import (
    Conversation, ConversationService, Message, PostMessageRequest, StartConversationRequest,
)
from .errors import (
    AuthorizationError, ConflictError, CreditLedgerError, InvalidStateError, NotFoundError, ValidationError,
)
from .identity import Actor, Role, require_role
from .models import (
    AcademicYearOptions, Appeal, AppealDecisionRequest, CreateCreditTitleRequest, CreditEntry,
    CreditHistoryResponse, CreditSign, CreditTitle, DecisionRequest, EntryResponse, EntryStatus,
    FacultyBalance, FileAppealRequest, IssueNegativeRequest, SubmitPositiveRequest, UpdateCreditTitleRequest,
)
from .notifications import InMemoryNotifier, Notification, NotificationEmitter
from .service import LedgerService
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
}


class RecommendationRequest(BaseModel):
    submission_text: str
    supporting_document_description: Optional[str] = None
    previous_allocations: Optional[str] = None


@dataclass
class Services:
    storage: InMemoryStorage = field(default_factory=InMemoryStorage)
    notifier: InMemoryNotifier = field(default_factory=InMemoryNotifier)
    recommender: CreditRecommender = field(default_factory=CreditRecommender)

    def __post_init__(self):
        self.emitter = NotificationEmitter(self.notifier)
        self.catalog = CreditTitleCatalog(self.storage)
        self.ledger = LedgerService(self.storage, self.catalog, self.emitter)
        self.balances = BalanceAggregator(self.storage)
        self.conversations = ConversationService(self.ledger, self.emitter)


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing identity headers")
    try:
        return Actor(actor_id=x_actor_id, role=Role(x_actor_role))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role '{x_actor_role}'")


def _require_self_or_admin(actor: Actor, faculty_id: str) -> None:
    if actor.is_faculty and actor.actor_id != faculty_id:
        raise AuthorizationError(f"{actor.actor_id} cannot view credits of {faculty_id}")


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or Services()

    app = FastAPI(
        title="Faculty Credit Ledger API",
        description="Faculty performance credits, admin remarks and appeals with an auditable ledger",
        version="1.0.0",
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CreditLedgerError)
    async def handle_ledger_error(request: Request, exc: CreditLedgerError) -> JSONResponse:
        return JSONResponse(
            status_code=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
            content={
                "error": type(exc).__name__,
                "detail": str(exc),
                "message": exc.user_message,
                "retryable": exc.retryable,
            },
        )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "faculty-credit-ledger"}

    @app.get("/academic-years", response_model=AcademicYearOptions, tags=["System"])
    def get_academic_years(count: int = config.YEAR_OPTIONS_COUNT) -> AcademicYearOptions:
        today = date.today()
        return AcademicYearOptions(current=current_academic_year(today), options=year_options(today, count))

    @app.post("/credit-titles", response_model=CreditTitle, status_code=status.HTTP_201_CREATED, tags=["Catalog"])
    def create_credit_title(request: CreateCreditTitleRequest, actor: Actor = Depends(get_actor)) -> CreditTitle:
        return services.catalog.create_title(actor, request)

    @app.get("/credit-titles", response_model=list[CreditTitle], tags=["Catalog"])
    def list_credit_titles(sign: Optional[CreditSign] = None, active_only: bool = True) -> list[CreditTitle]:
        return services.catalog.list(sign, active_only)

    @app.put("/credit-titles/{title_id}", response_model=CreditTitle, tags=["Catalog"])
    def update_credit_title(
        title_id: UUID, request: UpdateCreditTitleRequest, actor: Actor = Depends(get_actor)
    ) -> CreditTitle:
        return services.catalog.update_title(actor, title_id, request)

    @app.post("/credit-titles/{title_id}/deactivate", response_model=CreditTitle, tags=["Catalog"])
    def deactivate_credit_title(title_id: UUID, actor: Actor = Depends(get_actor)) -> CreditTitle:
        return services.catalog.deactivate(actor, title_id)

    @app.post("/credits/positive", response_model=EntryResponse, status_code=status.HTTP_201_CREATED, tags=["Credits"])
    def submit_positive(request: SubmitPositiveRequest, actor: Actor = Depends(get_actor)) -> EntryResponse:
        entry = services.ledger.submit_positive(actor, request)
        return EntryResponse(entry=entry, message="Submission received and awaiting review")

    @app.post("/credits/negative", response_model=EntryResponse, status_code=status.HTTP_201_CREATED, tags=["Credits"])
    def issue_negative(request: IssueNegativeRequest, actor: Actor = Depends(get_actor)) -> EntryResponse:
        entry = services.ledger.issue_negative(actor, request)
        return EntryResponse(entry=entry, message="Remark issued")

    @app.get("/credits", response_model=list[CreditEntry], tags=["Credits"])
    def list_credits(
        faculty_id: Optional[str] = None,
        entry_status: Optional[EntryStatus] = None,
        academic_year: Optional[str] = None,
        sign: Optional[CreditSign] = None,
        actor: Actor = Depends(get_actor),
    ) -> list[CreditEntry]:
        if actor.is_faculty:
            faculty_id = actor.actor_id
        return services.ledger.list_entries(faculty_id, entry_status, academic_year, sign)

    @app.get("/credits/{entry_id}", response_model=CreditEntry, tags=["Credits"])
    def get_credit(entry_id: UUID, actor: Actor = Depends(get_actor)) -> CreditEntry:
        entry = services.ledger.get_entry(entry_id)
        if actor.is_faculty and entry.faculty_id != actor.actor_id:
            raise AuthorizationError(f"{actor.actor_id} cannot view entry {entry_id}")
        return entry

    @app.post("/credits/{entry_id}/decision", response_model=EntryResponse, tags=["Credits"])
    def decide_credit(entry_id: UUID, request: DecisionRequest, actor: Actor = Depends(get_actor)) -> EntryResponse:
        entry = services.ledger.decide(entry_id, actor, request)
        return EntryResponse(entry=entry, message=f"Entry {entry.status.value}")

    @app.post("/credits/{entry_id}/appeal", response_model=Appeal, status_code=status.HTTP_201_CREATED, tags=["Appeals"])
    def file_appeal(entry_id: UUID, request: FileAppealRequest, actor: Actor = Depends(get_actor)) -> Appeal:
        return services.ledger.file_appeal(entry_id, actor, request)

    @app.post("/credits/{entry_id}/appeal/decision", response_model=EntryResponse, tags=["Appeals"])
    def decide_appeal(entry_id: UUID, request: AppealDecisionRequest, actor: Actor = Depends(get_actor)) -> EntryResponse:
        return services.ledger.decide_appeal(entry_id, actor, request)

    @app.get("/faculty/{faculty_id}/balance", response_model=FacultyBalance, tags=["Balances"])
    def get_faculty_balance(faculty_id: str, academic_year: Optional[str] = None,
                            actor: Actor = Depends(get_actor)) -> FacultyBalance:
        _require_self_or_admin(actor, faculty_id)
        return services.balances.summary(faculty_id, academic_year)

    @app.get("/faculty/{faculty_id}/history", response_model=CreditHistoryResponse, tags=["Balances"])
    def get_faculty_history(
        faculty_id: str,
        group_by: Literal["month", "academic_year"] = "month",
        months: Optional[int] = None,
        actor: Actor = Depends(get_actor),
    ) -> CreditHistoryResponse:
        _require_self_or_admin(actor, faculty_id)
        until = date.today() if months is not None else None
        buckets = services.balances.history(faculty_id, group_by, months, until)
        return CreditHistoryResponse(faculty_id=faculty_id, group_by=group_by, buckets=buckets)

    @app.get("/reports/leaderboard", response_model=list[FacultyBalance], tags=["Reports"])
    def get_leaderboard(academic_year: Optional[str] = None, limit: Optional[int] = None,
                        actor: Actor = Depends(get_actor)) -> list[FacultyBalance]:
        require_role(actor, Role.ADMIN, "Viewing reports")
        return services.balances.leaderboard(academic_year, limit)

    @app.post("/recommendations", response_model=CreditRecommendation, tags=["Advisor"])
    def recommend_credit(request: RecommendationRequest, actor: Actor = Depends(get_actor)) -> CreditRecommendation:
        require_role(actor, Role.ADMIN, "Requesting a credit recommendation")
        return services.recommender.recommend(
            request.submission_text, request.supporting_document_description, request.previous_allocations
        )

    @app.get("/notifications", response_model=list[Notification], tags=["Notifications"])
    def list_notifications(unread_only: bool = False, actor: Actor = Depends(get_actor)) -> list[Notification]:
        recipient = config.ADMIN_RECIPIENT if actor.is_admin else actor.actor_id
        return services.notifier.inbox(recipient, unread_only)

    @app.post("/notifications/read-all", tags=["Notifications"])
    def mark_all_notifications_read(actor: Actor = Depends(get_actor)):
        recipient = config.ADMIN_RECIPIENT if actor.is_admin else actor.actor_id
        return {"marked": services.notifier.mark_all_read(recipient)}

    @app.post("/conversations", response_model=Conversation, status_code=status.HTTP_201_CREATED, tags=["Conversations"])
    def start_conversation(request: StartConversationRequest, actor: Actor = Depends(get_actor)) -> Conversation:
        return services.conversations.start(actor, request)

    @app.get("/conversations", response_model=list[Conversation], tags=["Conversations"])
    def list_conversations(actor: Actor = Depends(get_actor)) -> list[Conversation]:
        return services.conversations.list_for(actor)

    @app.get("/conversations/{conversation_id}/messages", response_model=list[Message], tags=["Conversations"])
    def list_messages(conversation_id: UUID, limit: int = 100, actor: Actor = Depends(get_actor)) -> list[Message]:
        return services.conversations.list_messages(actor, conversation_id, limit)

    @app.post("/conversations/{conversation_id}/messages", response_model=Message,
              status_code=status.HTTP_201_CREATED, tags=["Conversations"])
    def post_message(conversation_id: UUID, request: PostMessageRequest, actor: Actor = Depends(get_actor)) -> Message:
        return services.conversations.post_message(actor, conversation_id, request)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=config.LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=8000)
