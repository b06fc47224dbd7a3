"""
Faculty Performance Credit Ledger

This package provides:
- A catalog of credit titles (positive good-work categories, negative remarks)
- Credit entries that snapshot their title and points at creation
- Entry lifecycle: pending → approved / rejected, remarks → appealed → reversed
- Compensating entries instead of mutation for accepted appeals
- Balances and history derived from approved entries only
- Post-commit notifications and per-entry conversations
"""

from .academic_year import current_academic_year, parse_academic_year, year_options
from .balance import BalanceAggregator
from .catalog import CreditTitleCatalog
from .errors import (
    AuthorizationError,
    ConflictError,
    CreditLedgerError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .identity import Actor, Role
from .models import (
    Appeal,
    AppealStatus,
    CreditEntry,
    CreditSign,
    CreditTitle,
    EntryKind,
    EntryStatus,
)
from .service import LedgerService

__all__ = [
    "Actor",
    "Role",
    "Appeal",
    "AppealStatus",
    "CreditEntry",
    "CreditSign",
    "CreditTitle",
    "EntryKind",
    "EntryStatus",
    "BalanceAggregator",
    "CreditTitleCatalog",
    "LedgerService",
    "current_academic_year",
    "parse_academic_year",
    "year_options",
    "CreditLedgerError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "InvalidStateError",
    "ConflictError",
]
