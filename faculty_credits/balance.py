from collections import defaultdict
from datetime import date, datetime
from typing import Literal, Optional

from .academic_year import parse_academic_year
from .errors import ValidationError
from .models import CreditEntry, EntryStatus, FacultyBalance, HistoryBucket
from .storage import InMemoryStorage, LedgerStorage

GroupBy = Literal["month", "academic_year"]

# a reversed remark keeps counting so its compensating entry can cancel it
COUNTED_STATUSES = (EntryStatus.APPROVED, EntryStatus.APPEAL_ACCEPTED)


def _month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def _trailing_months(end: date, months: int) -> list[str]:
    keys = []
    year, month = end.year, end.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


class BalanceAggregator:
    """Read-only views over committed entries.

    Nothing here is stored: every call re-reads the entry set. Approved
    entries count, and so do ``appeal_accepted`` originals: the compensating
    entry written with them carries the opposite points, so the pair nets to
    zero. A remark under appeal does not count until the appeal is decided.
    """

    def __init__(self, storage: Optional[LedgerStorage] = None):
        self.storage = storage or InMemoryStorage()

    def _counted(self, faculty_id: Optional[str], academic_year: Optional[str]) -> list[CreditEntry]:
        if academic_year:
            academic_year = parse_academic_year(academic_year)
        return [
            CreditEntry(**r)
            for r in self.storage.list_entries(faculty_id=faculty_id, academic_year=academic_year)
            if r["status"] in COUNTED_STATUSES
        ]

    def compute_balance(self, faculty_id: str, academic_year: Optional[str] = None) -> int:
        return sum(e.points for e in self._counted(faculty_id, academic_year))

    def summary(self, faculty_id: str, academic_year: Optional[str] = None) -> FacultyBalance:
        if academic_year:
            academic_year = parse_academic_year(academic_year)
        entries = [
            CreditEntry(**r)
            for r in self.storage.list_entries(faculty_id=faculty_id, academic_year=academic_year)
        ]
        counts = defaultdict(int)
        for e in entries:
            counts[e.status] += 1
        last = max(entries, key=lambda e: e.decided_at or e.created_at) if entries else None

        return FacultyBalance(
            faculty_id=faculty_id,
            academic_year=academic_year,
            balance=sum(e.points for e in entries if e.status in COUNTED_STATUSES),
            approved_count=counts[EntryStatus.APPROVED],
            pending_count=counts[EntryStatus.PENDING],
            rejected_count=counts[EntryStatus.REJECTED],
            appealed_count=counts[EntryStatus.APPEALED],
            last_activity_at=(last.decided_at or last.created_at) if last else None,
        )

    def history(
        self,
        faculty_id: str,
        group_by: GroupBy = "month",
        months: Optional[int] = None,
        until: Optional[date] = None,
    ) -> list[HistoryBucket]:
        """Counted points per bucket, oldest bucket first.

        With ``group_by="month"`` and ``months`` set, the result covers exactly
        the trailing ``months`` calendar months ending at ``until``, empty
        months included.
        """
        if group_by == "month":
            key = lambda e: _month_key(e.created_at)
        elif group_by == "academic_year":
            key = lambda e: e.academic_year
        else:
            raise ValidationError(f"Unknown grouping '{group_by}'")

        totals: dict[str, int] = defaultdict(int)
        for entry in self._counted(faculty_id, None):
            totals[key(entry)] += entry.points

        if group_by == "month" and months is not None:
            if months < 1:
                raise ValidationError(f"months must be at least 1, got {months}")
            if until is None:
                raise ValidationError("until is required when months is given")
            return [HistoryBucket(bucket=k, total_points=totals.get(k, 0)) for k in _trailing_months(until, months)]

        return [HistoryBucket(bucket=k, total_points=totals[k]) for k in sorted(totals)]

    def leaderboard(self, academic_year: Optional[str] = None, limit: Optional[int] = None) -> list[FacultyBalance]:
        totals: dict[str, int] = defaultdict(int)
        for entry in self._counted(None, academic_year):
            totals[entry.faculty_id] += entry.points

        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        if limit is not None:
            ranked = ranked[:limit]
        year = parse_academic_year(academic_year) if academic_year else None
        return [FacultyBalance(faculty_id=f, academic_year=year, balance=b) for f, b in ranked]
