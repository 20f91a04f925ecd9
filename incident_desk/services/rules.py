"""
Incident Desk business rules.

Pure checks shared by every lifecycle operation. Each check either
returns the normalized value or raises ValidationError.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from ..errors import ValidationError
from ..models.incident import IncidentStatus

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 150
DESCRIPTION_MAX_LENGTH = 5000

TITLE_PATTERN = re.compile(r"^[A-Za-zÁÉÍÓÚáéíóúÑñ0-9\s\-_.,;:()\[\]]+$")

# current -> allowed next. Same-state moves are never listed.
VALID_TRANSITIONS = {
    IncidentStatus.OPEN: {IncidentStatus.IN_PROGRESS, IncidentStatus.CLOSED},
    IncidentStatus.IN_PROGRESS: {IncidentStatus.OPEN, IncidentStatus.CLOSED},
    IncidentStatus.CLOSED: {IncidentStatus.OPEN},
}


def can_transition(current: IncidentStatus, new: IncidentStatus) -> bool:
    return IncidentStatus(new) in VALID_TRANSITIONS[IncidentStatus(current)]


def validate_transition(current: IncidentStatus, new: IncidentStatus) -> IncidentStatus:
    """Raise unless current -> new is in the transition table."""
    current = validate_status(current)
    new = validate_status(new)
    if not can_transition(current, new):
        allowed = sorted(s.value for s in VALID_TRANSITIONS[current])
        raise ValidationError(
            f'Cannot change status from "{current.value}" to "{new.value}". '
            f"Allowed: {allowed}"
        )
    return new


def validate_status(value) -> IncidentStatus:
    try:
        return IncidentStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in IncidentStatus)
        raise ValidationError(f"Status must be one of: {valid}") from None


def validate_title(title: Optional[str]) -> str:
    """Trim, then check presence, length and character set."""
    if title is None or not isinstance(title, str) or not title.strip():
        raise ValidationError("Incident title is required")

    title = title.strip()
    if len(title) < TITLE_MIN_LENGTH:
        raise ValidationError(
            f"Title must be at least {TITLE_MIN_LENGTH} characters"
        )
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title cannot exceed {TITLE_MAX_LENGTH} characters"
        )
    if not TITLE_PATTERN.match(title):
        raise ValidationError("Title contains invalid characters")
    return title


def validate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be text")

    description = description.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"
        )
    return description


def validate_positive_id(value, field: str) -> int:
    # bool is an int subclass; True is not an id.
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def validate_optional_id(value, field: str) -> Optional[int]:
    if value is None:
        return None
    return validate_positive_id(value, field)


def normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are converted to naive UTC, the stored form."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def validate_date_range(date_from: Optional[datetime], date_to: Optional[datetime]):
    date_from = normalize_timestamp(date_from)
    date_to = normalize_timestamp(date_to)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("Start date cannot be after end date")
    return date_from, date_to
