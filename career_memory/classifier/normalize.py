"""
Normalization of collaborator output.

These are the only coercions the kernel applies to collaborator values:
category and confidence case-folding, stale timestamp replacement, and
skill de-duplication. Anything else out of range is a schema violation.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from career_memory.errors import SchemaViolation
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import (
    ConfidenceLevel,
    EntryCategory,
    as_utc,
    union_preserving_order,
)


def normalize_category(value: Optional[str]) -> EntryCategory:
    """Lower-case and trim; anything outside the three categories becomes achievement."""
    cleaned = (value or "").strip().lower()
    try:
        return EntryCategory(cleaned)
    except ValueError:
        return EntryCategory.ACHIEVEMENT


def parse_confidence(operation: str, value: Optional[str]) -> ConfidenceLevel:
    """Lower-case and trim; an unknown level is a schema violation."""
    cleaned = (value or "").strip().lower()
    try:
        return ConfidenceLevel(cleaned)
    except ValueError:
        raise SchemaViolation(
            operation, f"confidence_score {value!r} is not one of low|medium|high"
        ) from None


def normalize_skills(*groups: List[str]) -> List[str]:
    return union_preserving_order(*groups, casefold=True)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def plausible_timestamp(
    value: Optional[str], now: datetime, config: MemoryConfig
) -> datetime:
    """
    The collaborator's timestamp, or `now` when it is missing, unparseable,
    older than `max_backdate_days` or further ahead than `future_tolerance_hours`.
    """
    now = as_utc(now)
    parsed = parse_timestamp(value)
    if parsed is None:
        return now
    if parsed < now - timedelta(days=config.max_backdate_days):
        return now
    if parsed > now + timedelta(hours=config.future_tolerance_hours):
        return now
    return parsed
