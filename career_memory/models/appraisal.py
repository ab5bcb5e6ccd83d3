"""Appraisal Summary — derived, read-only report over the full entry set."""

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel

from career_memory.models.collaborator import AchievementClaim


class AppraisalSummary(BaseModel):
    """
    Regenerated wholesale on every request; never partially updated.
    Every key achievement cites the entries it is drawn from.
    """

    executive_summary: str
    period: str
    key_achievements: List[AchievementClaim]
    top_strengths: List[str] = []
    skills_and_growth: str
    areas_for_development: List[str] = []
    gap_analysis: str
    unverified_entry_ids: List[str] = []    # Entries whose clarification was skipped
    category_counts: Dict[str, int] = {}
    generated_at: datetime
