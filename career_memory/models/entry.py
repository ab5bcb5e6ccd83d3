"""Career Entry — the unit of career memory."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


SKIPPED_SENTINEL = "skipped"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EntryCategory(str, Enum):
    ACHIEVEMENT = "achievement"
    CHALLENGE = "challenge"
    LEARNING = "learning"


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_ORDER.index(self)

    @property
    def percent(self) -> int:
        """Dashboard gauge value."""
        return {"low": 33, "medium": 66, "high": 100}[self.value]


_CONFIDENCE_ORDER = [ConfidenceLevel.LOW, ConfidenceLevel.MEDIUM, ConfidenceLevel.HIGH]


def upgrade_one_step(
    current: ConfidenceLevel, suggested: ConfidenceLevel
) -> ConfidenceLevel:
    """
    Move `current` at most one step toward `suggested`.

    Confidence never decreases here: a suggestion at or below the
    current level leaves it unchanged.
    """
    if suggested.rank <= current.rank:
        return current
    return _CONFIDENCE_ORDER[current.rank + 1]


def highest_confidence(levels: List[ConfidenceLevel]) -> ConfidenceLevel:
    return max(levels, key=lambda c: c.rank) if levels else ConfidenceLevel.LOW


class RefinementState(str, Enum):
    PENDING = "pending"     # Created or updated, not yet seen by reflection
    REFINED = "refined"     # Last touched by reflection or evidence attachment


class QuestionStatus(str, Enum):
    NONE = "none"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    SKIPPED = "skipped"
    AWAITING_REFLECTION = "awaiting_reflection"
    ANSWERED = "answered"   # Answer received, not yet woven in by reflection
    RESOLVED = "resolved"   # Answer consumed by a reflection pass


class QuestionSource(str, Enum):
    CLARIFICATION = "clarification"
    REFLECTION = "reflection"


class QuestionState(BaseModel):
    """
    Tagged question/response state of an entry.

    Exactly one variant holds at a time, so an entry can never carry a
    clarification question and a reflection question together.
    """

    status: QuestionStatus = QuestionStatus.NONE
    question: Optional[str] = None
    response: Optional[str] = None
    source: Optional[QuestionSource] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "QuestionState":
        awaiting = self.status in (
            QuestionStatus.AWAITING_CLARIFICATION,
            QuestionStatus.AWAITING_REFLECTION,
        )
        answered = self.status in (QuestionStatus.ANSWERED, QuestionStatus.RESOLVED)
        if awaiting and not (self.question and self.question.strip()):
            raise ValueError(f"status {self.status.value} requires a question")
        if not awaiting and self.question is not None:
            raise ValueError(f"status {self.status.value} cannot carry a question")
        if answered and not (self.response and self.response.strip()):
            raise ValueError(f"status {self.status.value} requires a response")
        if not answered and self.response is not None:
            raise ValueError(f"status {self.status.value} cannot carry a response")
        if answered and self.source is None:
            raise ValueError(f"status {self.status.value} requires a source")
        return self

    @classmethod
    def none(cls) -> "QuestionState":
        return cls()

    @classmethod
    def awaiting_clarification(cls, question: str) -> "QuestionState":
        return cls(status=QuestionStatus.AWAITING_CLARIFICATION, question=question)

    @classmethod
    def awaiting_reflection(cls, question: str) -> "QuestionState":
        return cls(status=QuestionStatus.AWAITING_REFLECTION, question=question)

    @classmethod
    def skipped(cls) -> "QuestionState":
        return cls(status=QuestionStatus.SKIPPED)

    @classmethod
    def answered(cls, response: str, source: QuestionSource) -> "QuestionState":
        return cls(status=QuestionStatus.ANSWERED, response=response, source=source)

    @property
    def is_outstanding(self) -> bool:
        return self.status in (
            QuestionStatus.AWAITING_CLARIFICATION,
            QuestionStatus.AWAITING_REFLECTION,
        )


class AuditRecord(BaseModel):
    """One mutation of an entry. Audit logs are append-only."""

    timestamp: datetime
    action: str                             # e.g., "captured", "clarification_answered"
    previous_value: Optional[str] = None
    new_value: Optional[str] = None


class LifecycleStage(str, Enum):
    """Named states of the confidence and clarification lifecycle."""
    CAPTURED = "captured"
    CAPTURED_HIGH = "captured_high"
    CAPTURED_NEEDS_CLARIFICATION = "captured_needs_clarification"
    CLARIFIED = "clarified"
    SKIPPED = "skipped"
    REFLECTION_PENDING = "reflection_pending"
    REFLECTION_RESOLVED = "reflection_resolved"
    WOVEN_IN = "woven_in"


class CareerEntry(BaseModel):
    """A single structured record of one reported work activity."""

    entry_id: str
    timestamp: datetime
    raw_input: str
    category: EntryCategory
    skills: List[str] = []
    impact_summary: str
    confidence_score: ConfidenceLevel
    evidence_links: List[str] = []
    refinement_state: RefinementState = RefinementState.PENDING
    thought_signature: str = ""             # Reasoning label used for evidence matching
    question_state: QuestionState = Field(default_factory=QuestionState)
    audit_log: List[AuditRecord] = []

    @field_validator("raw_input")
    @classmethod
    def _raw_input_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("raw_input must be non-empty")
        return value

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def clarification_question(self) -> Optional[str]:
        if self.question_state.status == QuestionStatus.AWAITING_CLARIFICATION:
            return self.question_state.question
        return None

    @property
    def reflection_question(self) -> Optional[str]:
        if self.question_state.status == QuestionStatus.AWAITING_REFLECTION:
            return self.question_state.question
        return None

    @property
    def user_clarification_response(self) -> Optional[str]:
        if self.question_state.status == QuestionStatus.SKIPPED:
            return SKIPPED_SENTINEL
        return self.question_state.response

    @property
    def is_skipped(self) -> bool:
        return self.question_state.status == QuestionStatus.SKIPPED

    @property
    def is_unverified(self) -> bool:
        """Skipped, or re-asked by reflection and still unanswered."""
        return self.question_state.status in (
            QuestionStatus.SKIPPED, QuestionStatus.AWAITING_REFLECTION,
        )

    @property
    def has_unconsumed_response(self) -> bool:
        return self.question_state.status == QuestionStatus.ANSWERED

    def with_audit(
        self,
        now: datetime,
        action: str,
        previous_value: Optional[str] = None,
        new_value: Optional[str] = None,
        **updates,
    ) -> "CareerEntry":
        """Return a copy with `updates` applied and one audit record appended."""
        record = AuditRecord(
            timestamp=as_utc(now),
            action=action,
            previous_value=previous_value,
            new_value=new_value,
        )
        updates["audit_log"] = list(self.audit_log) + [record]
        return self.model_copy(update=updates)

    def to_context(self) -> dict:
        """Flattened wire form shared with the reasoning collaborator."""
        return {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "raw_input": self.raw_input,
            "category": self.category.value,
            "skills": list(self.skills),
            "impact_summary": self.impact_summary,
            "confidence_score": self.confidence_score.value,
            "evidence_links": list(self.evidence_links),
            "refinement_state": self.refinement_state.value,
            "thought_signature": self.thought_signature,
            "clarification_question": self.clarification_question,
            "reflection_question": self.reflection_question,
            "user_clarification_response": self.user_clarification_response,
        }


def lifecycle_stage(entry: CareerEntry) -> LifecycleStage:
    """Map an entry onto the named lifecycle states."""
    state = entry.question_state
    if state.status == QuestionStatus.AWAITING_CLARIFICATION:
        return LifecycleStage.CAPTURED_NEEDS_CLARIFICATION
    if state.status == QuestionStatus.SKIPPED:
        return LifecycleStage.SKIPPED
    if state.status == QuestionStatus.AWAITING_REFLECTION:
        return LifecycleStage.REFLECTION_PENDING
    if state.status == QuestionStatus.ANSWERED:
        if state.source == QuestionSource.REFLECTION:
            return LifecycleStage.REFLECTION_RESOLVED
        return LifecycleStage.CLARIFIED
    if state.status == QuestionStatus.RESOLVED:
        return LifecycleStage.WOVEN_IN
    if entry.confidence_score == ConfidenceLevel.HIGH:
        return LifecycleStage.CAPTURED_HIGH
    return LifecycleStage.CAPTURED


def union_preserving_order(*groups: List[str], casefold: bool = False) -> List[str]:
    """Ordered union of string lists, dropping blanks and duplicates."""
    seen = set()
    merged: List[str] = []
    for group in groups:
        for item in group:
            label = item.strip()
            if not label:
                continue
            key = label.casefold() if casefold else label
            if key in seen:
                continue
            seen.add(key)
            merged.append(label)
    return merged
