"""Reusable Pydantic validators for catalog identifiers and timestamps.

Provides:
- Permission / role identifier validation (snake_case ids)
- Datetime normalisation to naive UTC (storage convention)
- Display-name map sanitisation
- Null rejection for partial updates of required columns
"""

import re
from datetime import datetime, timezone


# Catalog ids are stable machine names, e.g. ``view_care_plans``
IDENTIFIER_REGEX = re.compile(r"^[a-z][a-z0-9_]{1,99}$")


def validate_identifier(value: str) -> str:
    """Validate a permission or role identifier.

    Args:
        value: Candidate id

    Returns:
        The id, stripped

    Raises:
        ValueError: If the id is not lowercase snake_case
    """
    if not isinstance(value, str):
        raise ValueError("Must be a string")

    value = value.strip()
    if not IDENTIFIER_REGEX.match(value):
        raise ValueError(
            "Invalid identifier (lowercase letters, digits and underscores, "
            "starting with a letter)"
        )
    return value


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_display_names(value: dict | None) -> dict | None:
    """Drop blank labels and strip the rest."""
    if value is None:
        return None
    cleaned = {}
    for category, label in value.items():
        if not isinstance(label, str) or not label.strip():
            continue
        cleaned[str(category).strip()] = label.strip()
    return cleaned or None



def reject_null(value):
    """Partial updates may omit a required column but never null it out."""
    if value is None:
        raise ValueError("Field may be omitted but cannot be null")
    return value
