"""
Academic year labels.

An academic year starts in June: any date from June onward belongs to
``YYYY-(YYYY+1)``, anything earlier to ``(YYYY-1)-YYYY``.
"""
import re
from datetime import date

from . import config
from .errors import ValidationError

_LABEL_RE = re.compile(r"^(\d{4})-(\d{2}|\d{4})$")


def _format(start_year: int) -> str:
    return f"{start_year}-{start_year + 1}"


def start_year_for(now: date) -> int:
    if now.month >= config.ACADEMIC_YEAR_START_MONTH:
        return now.year
    return now.year - 1


def current_academic_year(now: date) -> str:
    return _format(start_year_for(now))


def year_options(now: date, count: int = config.YEAR_OPTIONS_COUNT) -> list[str]:
    """Most recent first, ending at the year containing ``now``."""
    if count < 1:
        raise ValidationError(f"count must be at least 1, got {count}")
    start = start_year_for(now)
    return [_format(start - i) for i in range(count)]


def parse_academic_year(label: str) -> str:
    """Validate a user-supplied label and return it as ``YYYY-YYYY``.

    The short ``2023-24`` form used by older forms is accepted too.
    """
    if not isinstance(label, str):
        raise ValidationError("Academic year is required")
    match = _LABEL_RE.match(label.strip())
    if not match:
        raise ValidationError(f"Academic year '{label}' must look like 2024-2025")

    start = int(match.group(1))
    end_part = match.group(2)
    if len(end_part) == 2:
        end = (start // 100) * 100 + int(end_part)
        if end < start:
            end += 100
    else:
        end = int(end_part)

    if end != start + 1:
        raise ValidationError(f"Academic year '{label}' must span consecutive years")
    return _format(start)
