"""
Entry Classifier — turns raw user text into a structured CareerEntry draft.

Behavioral Contract:
- Returns one of: off-task rejection, duplicate risk, or a fully populated draft
- Never stores anything; committing the draft is the caller's decision
- Fails the whole capture on collaborator failure; nothing is guessed
- Normalizes category and confidence, forces raw_input to the submitted
  text, and replaces missing or implausible timestamps with `now`
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from career_memory.classifier.normalize import (
    normalize_category,
    normalize_skills,
    parse_confidence,
    plausible_timestamp,
)
from career_memory.errors import SchemaViolation, UserInputRejected
from career_memory.models.collaborator import ClassificationPayload
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import (
    CareerEntry,
    QuestionState,
    RefinementState,
    as_utc,
    union_preserving_order,
)
from career_memory.models.memory import sort_entries
from career_memory.reasoning.collaborator import ReasoningCollaborator


DEFAULT_REJECTION = (
    "That doesn't look like a work activity. Tell me what you worked on, "
    "what changed, or what you learned."
)


class ClassificationKind(str, Enum):
    OFF_TASK = "off_task"
    DUPLICATE_RISK = "duplicate_risk"
    DRAFT = "draft"


class ClassifierResult:
    """Result of classifying one piece of user text."""

    def __init__(
        self,
        kind: ClassificationKind,
        draft: Optional[CareerEntry] = None,
        rejection_message: Optional[str] = None,
        duplicate_of: Optional[str] = None,
        duplicate_question: Optional[str] = None,
    ):
        self.kind = kind
        self.draft = draft
        self.rejection_message = rejection_message
        self.duplicate_of = duplicate_of
        self.duplicate_question = duplicate_question

    @property
    def is_off_task(self) -> bool:
        return self.kind == ClassificationKind.OFF_TASK

    @property
    def duplicate_risk_detected(self) -> bool:
        return self.kind == ClassificationKind.DUPLICATE_RISK


def new_entry_id() -> str:
    return f"entry_{uuid4().hex[:12]}"


class EntryClassifier:
    """Classifies raw text via the reasoning collaborator."""

    def __init__(
        self,
        collaborator: ReasoningCollaborator,
        config: Optional[MemoryConfig] = None,
    ):
        self.collaborator = collaborator
        self.config = config or MemoryConfig()

    def classify(
        self,
        text: str,
        now: datetime,
        existing_entries: Optional[List[CareerEntry]] = None,
        timezone: str = "UTC",
    ) -> ClassifierResult:
        if not text or not text.strip():
            raise UserInputRejected("Describe a work activity to log.")

        now = as_utc(now)
        context = [
            {
                "entry_id": e.entry_id,
                "timestamp": e.timestamp.isoformat(),
                "raw_input": e.raw_input,
                "impact_summary": e.impact_summary,
                "skills": list(e.skills),
            }
            for e in sort_entries(existing_entries or [])[: self.config.duplicate_context_size]
        ]

        payload = self.collaborator.classify_entry(text, now, timezone, context)

        if payload.is_off_task:
            return ClassifierResult(
                kind=ClassificationKind.OFF_TASK,
                rejection_message=(payload.rejection_message or "").strip() or DEFAULT_REJECTION,
            )

        draft = self._build_draft(text, now, payload)

        if payload.duplicate_risk_detected:
            return ClassifierResult(
                kind=ClassificationKind.DUPLICATE_RISK,
                draft=draft,
                duplicate_of=payload.duplicate_of,
                duplicate_question=(
                    payload.duplicate_confirmation_question
                    or "This looks similar to an existing entry. Link it, or log it as new?"
                ),
            )

        return ClassifierResult(kind=ClassificationKind.DRAFT, draft=draft)

    def _build_draft(
        self, text: str, now: datetime, payload: ClassificationPayload
    ) -> CareerEntry:
        """Build the normalized entry draft from a non-off-task payload."""
        summary = (payload.impact_summary or "").strip()
        if not summary:
            raise SchemaViolation("classify_entry", "impact_summary is required for an entry")
        if payload.category is None:
            raise SchemaViolation("classify_entry", "category is required for an entry")

        return CareerEntry(
            entry_id=new_entry_id(),
            timestamp=plausible_timestamp(payload.timestamp, now, self.config),
            raw_input=text,
            category=normalize_category(payload.category),
            skills=normalize_skills(payload.skills),
            impact_summary=summary,
            confidence_score=parse_confidence("classify_entry", payload.confidence_score),
            evidence_links=union_preserving_order(payload.evidence_links),
            refinement_state=RefinementState.PENDING,
            thought_signature=(payload.thought_signature or "").strip(),
            question_state=QuestionState.none(),
            audit_log=[],
        )
