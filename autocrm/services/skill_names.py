"""
Skill name normalization. One canonical form per skill so that
"Customer Service", "customer service" and "customer_service" are the same row.
"""

import re
from typing import Iterable

from ..core.errors import ValidationError

MAX_SKILL_NAME_LENGTH = 50

_WHITESPACE_RUN = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9_]")


def normalize_skill_name(raw: str) -> str:
    """Lowercase, whitespace runs → "_", drop [^a-z0-9_], truncate to 50. Idempotent."""
    name = raw.lower()
    name = _WHITESPACE_RUN.sub("_", name)
    name = _DISALLOWED.sub("", name)
    return name[:MAX_SKILL_NAME_LENGTH]


def validate_skill_name(raw: str) -> str:
    """Normalize, rejecting names with nothing left to store."""
    if not isinstance(raw, str):
        raise ValidationError("Skill name must be a string", field="name", value=raw)
    name = normalize_skill_name(raw)
    if not name:
        raise ValidationError(
            "Skill name must contain at least one letter, digit or underscore",
            field="name",
            value=raw,
        )
    return name


def normalize_skill_names(raws: Iterable[str]) -> list[str]:
    """Validate every name and dedupe, keeping first-seen order."""
    seen: dict[str, None] = {}
    for raw in raws:
        seen.setdefault(validate_skill_name(raw), None)
    return list(seen)
