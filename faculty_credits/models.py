from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class CreditSign(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class EntryKind(str, Enum):
    STANDARD = "standard"
    COMPENSATING = "compensating"


class EntryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPEALED = "appealed"
    APPEAL_ACCEPTED = "appeal_accepted"


class AppealStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DecisionOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class AppealOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CreditTitle(BaseModel):
    id: UUID
    title: str
    points: int
    sign: CreditSign
    description: str = ""
    active: bool = True
    created_at: datetime
    created_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Appeal(BaseModel):
    id: UUID
    credit_entry_id: UUID
    reason: str
    proof_ref: Optional[str] = None
    status: AppealStatus
    created_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    decision_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def is_active(self) -> bool:
        return self.status == AppealStatus.PENDING


class CreditEntry(BaseModel):
    id: UUID
    faculty_id: str
    kind: EntryKind = EntryKind.STANDARD
    credit_title_id: UUID
    credit_title: str
    points: int
    sign: CreditSign
    title: str
    academic_year: str
    proof_ref: Optional[str] = None
    notes: Optional[str] = None
    status: EntryStatus
    created_by: str
    created_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    decision_notes: Optional[str] = None
    reference_entry_id: Optional[UUID] = None
    appeal: Optional[Appeal] = None
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

    def can_decide(self) -> bool:
        return self.status == EntryStatus.PENDING

    def is_terminal(self) -> bool:
        return self.status in (EntryStatus.APPROVED, EntryStatus.REJECTED, EntryStatus.APPEAL_ACCEPTED)


class CreateCreditTitleRequest(BaseModel):
    title: str
    points: int
    sign: CreditSign
    description: str = ""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Research paper published (Scopus indexed)",
            "points": 10,
            "sign": "positive",
            "description": "Paper accepted in a Scopus indexed journal",
        }
    })


class UpdateCreditTitleRequest(BaseModel):
    """Full replacement of an unreferenced title's fields."""
    title: str
    points: int
    sign: CreditSign
    description: str = ""


class SubmitPositiveRequest(BaseModel):
    credit_title_id: UUID
    academic_year: str
    title: str
    proof_ref: Optional[str] = None
    notes: Optional[str] = None


class IssueNegativeRequest(BaseModel):
    faculty_id: str
    credit_title_id: UUID
    academic_year: str
    notes: Optional[str] = None
    proof_ref: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "faculty_id": "fac-1024",
            "credit_title_id": "22222222-2222-2222-2222-222222222222",
            "academic_year": "2024-2025",
            "notes": "Late submission of internal marks",
        }
    })


class DecisionRequest(BaseModel):
    outcome: DecisionOutcome
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, description="Version the caller last read")


class FileAppealRequest(BaseModel):
    reason: str
    proof_ref: Optional[str] = None
    expected_version: Optional[int] = None


class AppealDecisionRequest(BaseModel):
    outcome: AppealOutcome
    decision_notes: Optional[str] = None
    expected_version: Optional[int] = None


class EntryResponse(BaseModel):
    entry: CreditEntry
    compensating_entry: Optional[CreditEntry] = None
    message: str


class FacultyBalance(BaseModel):
    faculty_id: str
    academic_year: Optional[str] = None
    balance: int
    approved_count: int = 0
    pending_count: int = 0
    rejected_count: int = 0
    appealed_count: int = 0
    last_activity_at: Optional[datetime] = None


class HistoryBucket(BaseModel):
    bucket: str
    total_points: int


class CreditHistoryResponse(BaseModel):
    faculty_id: str
    group_by: Literal["month", "academic_year"]
    buckets: list[HistoryBucket]


class AcademicYearOptions(BaseModel):
    current: str
    options: list[str]
