import copy
import threading
from typing import Iterable, Optional, Protocol
from uuid import UUID

from .errors import ConflictError, InvalidStateError, ValidationError


class LedgerStorage(Protocol):
    def insert_title(self, record: dict, unique_active_title: bool = False) -> dict:
        ...

    def replace_title(
        self, record: dict, unique_active_title: bool = False, require_unreferenced: bool = False
    ) -> dict:
        ...

    def get_title(self, title_id: UUID) -> Optional[dict]:
        ...

    def list_titles(self) -> list[dict]:
        ...

    def get_entry(self, entry_id: UUID) -> Optional[dict]:
        ...

    def list_entries(
        self,
        faculty_id: Optional[str] = None,
        status: Optional[str] = None,
        academic_year: Optional[str] = None,
        sign: Optional[str] = None,
    ) -> list[dict]:
        ...

    def commit(
        self,
        updates: Iterable[tuple[dict, int]] = (),
        inserts: Iterable[dict] = (),
    ) -> list[dict]:
        ...


class InMemoryStorage:
    """Process-local storage with a version check on every entry write.

    Entry records are plain dicts carrying a ``version`` counter. ``commit``
    writes every update and insert under one lock, and only if each updated
    record's stored version still equals the version the caller read.
    """

    def __init__(self):
        self.credit_titles: dict[UUID, dict] = {}
        self.credit_entries: dict[UUID, dict] = {}
        self._lock = threading.Lock()

    def insert_title(self, record: dict, unique_active_title: bool = False) -> dict:
        with self._lock:
            if unique_active_title:
                self._check_title_free(record)
            self.credit_titles[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def replace_title(
        self, record: dict, unique_active_title: bool = False, require_unreferenced: bool = False
    ) -> dict:
        with self._lock:
            if require_unreferenced and any(
                e["credit_title_id"] == record["id"] for e in self.credit_entries.values()
            ):
                raise InvalidStateError(f"Credit title {record['id']} is referenced by ledger entries")
            if unique_active_title:
                self._check_title_free(record)
            self.credit_titles[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def _check_title_free(self, record: dict) -> None:
        if not record.get("active", True):
            return
        name = record["title"].casefold()
        for other in self.credit_titles.values():
            if other["id"] != record["id"] and other["active"] and other["title"].casefold() == name:
                raise ValidationError(f"An active credit title named '{record['title']}' already exists")

    def get_title(self, title_id: UUID) -> Optional[dict]:
        with self._lock:
            record = self.credit_titles.get(title_id)
            return copy.deepcopy(record) if record else None

    def list_titles(self) -> list[dict]:
        with self._lock:
            return [copy.deepcopy(r) for r in self.credit_titles.values()]

    def get_entry(self, entry_id: UUID) -> Optional[dict]:
        with self._lock:
            record = self.credit_entries.get(entry_id)
            return copy.deepcopy(record) if record else None

    def list_entries(
        self,
        faculty_id: Optional[str] = None,
        status: Optional[str] = None,
        academic_year: Optional[str] = None,
        sign: Optional[str] = None,
    ) -> list[dict]:
        with self._lock:
            snapshot = [copy.deepcopy(r) for r in self.credit_entries.values()]
        return [
            r for r in snapshot
            if (faculty_id is None or r["faculty_id"] == faculty_id)
            and (status is None or r["status"] == status)
            and (academic_year is None or r["academic_year"] == academic_year)
            and (sign is None or r["sign"] == sign)
        ]

    def commit(
        self,
        updates: Iterable[tuple[dict, int]] = (),
        inserts: Iterable[dict] = (),
    ) -> list[dict]:
        updates = list(updates)
        inserts = list(inserts)
        with self._lock:
            for record, expected_version in updates:
                current = self.credit_entries.get(record["id"])
                if current is None or current["version"] != expected_version:
                    raise ConflictError(
                        f"Entry {record['id']} changed since version {expected_version}"
                    )
            for record in inserts:
                if record["id"] in self.credit_entries:
                    raise ConflictError(f"Entry {record['id']} already exists")

            committed = []
            for record, expected_version in updates:
                stored = copy.deepcopy(record)
                stored["version"] = expected_version + 1
                self.credit_entries[stored["id"]] = stored
                committed.append(copy.deepcopy(stored))
            for record in inserts:
                stored = copy.deepcopy(record)
                stored.setdefault("version", 1)
                self.credit_entries[stored["id"]] = stored
                committed.append(copy.deepcopy(stored))
            return committed
