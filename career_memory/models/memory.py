"""Memory State — the single versioned value holding all career entries."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from career_memory.models.collaborator import ChangeLogItem
from career_memory.models.entry import CareerEntry


def sort_entries(entries: List[CareerEntry]) -> List[CareerEntry]:
    """Timestamp descending; entry_id breaks ties so ordering is stable."""
    return sorted(
        entries,
        key=lambda e: (e.timestamp, e.entry_id),
        reverse=True,
    )


class ReflectionReport(BaseModel):
    """Summary and change log of the last reflection pass."""

    reflection_summary: str
    change_log: List[ChangeLogItem] = []
    touched_entry_ids: List[str] = []
    reflected_at: datetime


class MemoryState(BaseModel):
    """Everything that must survive a restart."""

    version: int = 0
    entries: List[CareerEntry] = []
    last_reflection: Optional[ReflectionReport] = None
    last_reflection_at: Optional[datetime] = None
    timezone: str = "UTC"

    def get(self, entry_id: str) -> Optional[CareerEntry]:
        return next((e for e in self.entries if e.entry_id == entry_id), None)

    def replace_entries(self, entries: List[CareerEntry], **updates) -> "MemoryState":
        """Next full state: whole-collection replace and re-sort."""
        updates["entries"] = sort_entries(entries)
        return self.model_copy(update=updates)


class MemoryStats(BaseModel):
    """Dashboard counters over the current entry set."""

    total_entries: int = 0
    achievements: int = 0
    challenges: int = 0
    learnings: int = 0
    pending_clarifications: int = 0
    pending_reflections: int = 0
    skipped: int = 0
    with_evidence: int = 0
    average_confidence_percent: float = 0.0
