"""
Reasoning collaborator payloads — the structured responses of the LLM service.

Each collaborator operation returns one of these models. Responses are
validated strictly; a missing required field or a wrong type is a hard
failure of that call. Enum-like fields (category, confidence) are kept as
strings here so that the allowed normalizations (case-folding, trimming)
happen in one place, in the components that consume them.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ClassificationPayload(BaseModel):
    """Response of `classify_entry`."""

    is_off_task: bool
    rejection_message: Optional[str] = None
    duplicate_risk_detected: bool
    duplicate_of: Optional[str] = None                  # entry_id of the overlapping entry
    duplicate_confirmation_question: Optional[str] = None
    timestamp: Optional[str] = None                     # ISO 8601, may be stale or missing
    raw_input: Optional[str] = None
    category: Optional[str] = None
    skills: List[str] = []
    impact_summary: Optional[str] = None
    confidence_score: Optional[str] = None
    evidence_links: List[str] = []
    thought_signature: Optional[str] = None


class ClarificationPayload(BaseModel):
    """Response of `request_clarification` — exactly one question."""

    question: str = Field(min_length=1)


class EvidencePayload(BaseModel):
    """Response of `attach_evidence`."""

    match_id: str
    is_match: bool
    suggested_confidence: str
    reasoning: str
    match_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ReflectionDraft(BaseModel):
    """One refined (possibly merged) entry proposed by `weekly_reflect`."""

    entry_id: str
    merged_from: List[str] = []             # Source entry ids; empty means [entry_id]
    raw_input: Optional[str] = None
    category: str
    skills: List[str] = []
    impact_summary: str
    confidence_score: str
    evidence_links: List[str] = []
    thought_signature: Optional[str] = None
    reflection_question: Optional[str] = None

    def source_ids(self) -> List[str]:
        return list(self.merged_from) if self.merged_from else [self.entry_id]


class ChangeLogItem(BaseModel):
    """One change made during a reflection pass."""

    action: str                             # "merged" | "refined" | "reflection_question_raised" | "response_woven_in" | "question_superseded"
    entry_ids: List[str] = []
    result_entry_id: Optional[str] = None
    description: str = ""


class ReflectionPayload(BaseModel):
    """Response of `weekly_reflect`."""

    refined_entries: List[ReflectionDraft]
    reflection_summary: str
    change_log: List[ChangeLogItem] = []


class AchievementClaim(BaseModel):
    """A narrative claim and the stored entries that support it."""

    narrative: str = Field(min_length=1)
    entry_ids: List[str] = []


class AppraisalPayload(BaseModel):
    """Response of `synthesize_appraisal`."""

    executive_summary: str
    period: Optional[str] = None
    key_achievements: List[AchievementClaim]
    top_strengths: List[str] = []
    skills_and_growth: str
    areas_for_development: List[str]
    gap_analysis: str
