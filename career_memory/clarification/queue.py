"""
Confidence & Clarification Queue — one question per entry, resolved by the user.

States:
  CAPTURED_NEEDS_CLARIFICATION → (CLARIFIED | SKIPPED)
  SKIPPED → REFLECTION_PENDING → (REFLECTION_RESOLVED | SKIPPED)

Transitions are pure functions over CareerEntry; they return a new entry
with an audit record appended and never touch impact, skills or evidence.
"""

from datetime import datetime
from typing import Optional

from career_memory.errors import SchemaViolation, UserInputRejected
from career_memory.models.entry import (
    CareerEntry,
    ConfidenceLevel,
    QuestionSource,
    QuestionState,
    QuestionStatus,
    RefinementState,
    SKIPPED_SENTINEL,
)
from career_memory.reasoning.collaborator import ReasoningCollaborator


def _require_response(response: Optional[str]) -> str:
    if response is None or not response.strip():
        raise UserInputRejected("Please enter an answer, or skip the question.")
    return response.strip()


def needs_clarification(entry: CareerEntry) -> bool:
    """Low-confidence entries without any question history get one question."""
    return (
        entry.confidence_score == ConfidenceLevel.LOW
        and entry.question_state.status == QuestionStatus.NONE
    )


def raise_clarification(entry: CareerEntry, question: str, now: datetime) -> CareerEntry:
    """Transition A: attach the single clarification question."""
    if entry.question_state.is_outstanding:
        return entry
    return entry.with_audit(
        now,
        "clarification_requested",
        new_value=question,
        question_state=QuestionState.awaiting_clarification(question),
    )


def answer_clarification(entry: CareerEntry, response: Optional[str], now: datetime) -> CareerEntry:
    """Transition B: the user answered the clarification question."""
    text = _require_response(response)
    if entry.question_state.status != QuestionStatus.AWAITING_CLARIFICATION:
        raise UserInputRejected(f"Entry {entry.entry_id} has no open clarification question.")
    return entry.with_audit(
        now,
        "clarification_answered",
        previous_value=entry.confidence_score.value,
        new_value=text,
        confidence_score=ConfidenceLevel.HIGH,
        refinement_state=RefinementState.PENDING,
        question_state=QuestionState.answered(text, QuestionSource.CLARIFICATION),
    )


def skip_clarification(entry: CareerEntry, now: datetime) -> CareerEntry:
    """Transition C: the user declined; the question closes unanswered."""
    if not entry.question_state.is_outstanding:
        raise UserInputRejected(f"Entry {entry.entry_id} has no open question to skip.")
    return entry.with_audit(
        now,
        "question_skipped",
        previous_value=entry.question_state.question,
        new_value=SKIPPED_SENTINEL,
        question_state=QuestionState.skipped(),
    )


def raise_reflection_question(entry: CareerEntry, question: str, now: datetime) -> CareerEntry:
    """Transition D: a reflection pass re-asks a previously skipped entry."""
    if entry.question_state.status != QuestionStatus.SKIPPED:
        return entry
    return entry.with_audit(
        now,
        "reflection_question_raised",
        previous_value=SKIPPED_SENTINEL,
        new_value=question,
        question_state=QuestionState.awaiting_reflection(question),
    )


def answer_reflection(entry: CareerEntry, response: Optional[str], now: datetime) -> CareerEntry:
    """Transition E: the user answered the reflection question."""
    text = _require_response(response)
    if entry.question_state.status != QuestionStatus.AWAITING_REFLECTION:
        raise UserInputRejected(f"Entry {entry.entry_id} has no open reflection question.")
    return entry.with_audit(
        now,
        "reflection_answered",
        previous_value=entry.confidence_score.value,
        new_value=text,
        confidence_score=ConfidenceLevel.HIGH,
        refinement_state=RefinementState.PENDING,
        question_state=QuestionState.answered(text, QuestionSource.REFLECTION),
    )


def consume_response(entry: CareerEntry, now: datetime) -> CareerEntry:
    """Mark an answered question as woven into the entry by reflection."""
    state = entry.question_state
    if state.status != QuestionStatus.ANSWERED:
        return entry
    return entry.with_audit(
        now,
        "response_woven_in",
        new_value=state.response,
        question_state=QuestionState(
            status=QuestionStatus.RESOLVED,
            response=state.response,
            source=state.source,
        ),
    )


def _clean_question(question: str) -> str:
    return " ".join(question.split())


class ClarificationQueue:
    """Requests questions from the reasoning collaborator."""

    def __init__(self, collaborator: ReasoningCollaborator):
        self.collaborator = collaborator

    def request_question(self, entry: CareerEntry, for_reflection: bool = False) -> str:
        payload = self.collaborator.request_clarification(
            entry.to_context(), for_reflection=for_reflection
        )
        question = _clean_question(payload.question)
        if not question:
            raise SchemaViolation("request_clarification", "question is blank")
        return question

    def enqueue(self, entry: CareerEntry, now: datetime) -> CareerEntry:
        """Transition A for a freshly captured entry, if it needs it."""
        if not needs_clarification(entry):
            return entry
        return raise_clarification(entry, self.request_question(entry), now)
