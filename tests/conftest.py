"""Shared fixtures: a scripted reasoning collaborator and entry factories."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from career_memory.models.collaborator import (
    AppraisalPayload,
    ClarificationPayload,
    ClassificationPayload,
    EvidencePayload,
    ReflectionPayload,
)
from career_memory.models.entry import (
    CareerEntry,
    ConfidenceLevel,
    EntryCategory,
    QuestionState,
    RefinementState,
)
from career_memory.reasoning.collaborator import parse_payload
from career_memory.store.repository import EntryRepository


# Friday 17:00 UTC
NOW = datetime(2026, 3, 13, 17, 0, tzinfo=timezone.utc)


class FakeCollaborator:
    """
    Scripted stand-in for the LLM service.

    Each operation pops the next scripted response. Dict responses go
    through the same JSON validation as real ones; exceptions are raised.
    """

    OPERATIONS = (
        "classify_entry",
        "request_clarification",
        "attach_evidence",
        "weekly_reflect",
        "synthesize_appraisal",
    )
    MODELS = {
        "classify_entry": ClassificationPayload,
        "request_clarification": ClarificationPayload,
        "attach_evidence": EvidencePayload,
        "weekly_reflect": ReflectionPayload,
        "synthesize_appraisal": AppraisalPayload,
    }

    def __init__(self):
        self.responses: Dict[str, List[Any]] = {op: [] for op in self.OPERATIONS}
        self.calls: List[tuple] = []

    def script(self, operation: str, *responses: Any) -> "FakeCollaborator":
        self.responses[operation].extend(responses)
        return self

    def calls_to(self, operation: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == operation]

    def _next(self, operation: str, *args):
        self.calls.append((operation,) + args)
        queue = self.responses[operation]
        if not queue:
            raise AssertionError(f"Unscripted call to {operation}")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        text = item if isinstance(item, str) else json.dumps(item)
        return parse_payload(operation, text, self.MODELS[operation])

    # --- Response builders ---

    def classifies(self, **overrides) -> "FakeCollaborator":
        payload = {
            "is_off_task": False,
            "duplicate_risk_detected": False,
            "timestamp": NOW.isoformat(),
            "raw_input": "ignored",
            "category": "achievement",
            "skills": ["Python"],
            "impact_summary": "Shipped a feature.",
            "confidence_score": "high",
            "evidence_links": [],
            "thought_signature": "feature-shipping",
        }
        payload.update(overrides)
        return self.script("classify_entry", payload)

    def asks(self, question: str) -> "FakeCollaborator":
        return self.script("request_clarification", {"question": question})

    def matches(
        self,
        match_id: str,
        is_match: bool = True,
        suggested_confidence: str = "high",
        reasoning: str = "Artifact supports the entry.",
        match_confidence=None,
    ) -> "FakeCollaborator":
        payload = {
            "match_id": match_id,
            "is_match": is_match,
            "suggested_confidence": suggested_confidence,
            "reasoning": reasoning,
        }
        if match_confidence is not None:
            payload["match_confidence"] = match_confidence
        return self.script("attach_evidence", payload)

    def reflects(self, refined_entries, summary="Reflected.", change_log=None) -> "FakeCollaborator":
        return self.script("weekly_reflect", {
            "refined_entries": refined_entries,
            "reflection_summary": summary,
            "change_log": change_log or [],
        })

    def appraises(self, **overrides) -> "FakeCollaborator":
        payload = {
            "executive_summary": "A productive period.",
            "period": "Q1 2026",
            "key_achievements": [],
            "top_strengths": ["Delivery"],
            "skills_and_growth": "Grew in Python.",
            "areas_for_development": ["Delegation"],
            "gap_analysis": "",
        }
        payload.update(overrides)
        return self.script("synthesize_appraisal", payload)

    # --- ReasoningCollaborator protocol ---

    def classify_entry(self, text, now, timezone, existing_entries):
        return self._next("classify_entry", text, now, timezone, existing_entries)

    def request_clarification(self, entry, for_reflection=False):
        return self._next("request_clarification", entry, for_reflection)

    def attach_evidence(self, artifact, entries):
        return self._next("attach_evidence", artifact, entries)

    def weekly_reflect(self, entries, now, timezone):
        return self._next("weekly_reflect", entries, now, timezone)

    def synthesize_appraisal(self, entries):
        return self._next("synthesize_appraisal", entries)


def make_entry(
    entry_id: str = "entry_1",
    timestamp: datetime = NOW,
    raw_input: str = "Did some work",
    category: EntryCategory = EntryCategory.ACHIEVEMENT,
    skills=None,
    impact_summary: str = "Delivered something.",
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM,
    evidence_links=None,
    refinement_state: RefinementState = RefinementState.PENDING,
    question_state: QuestionState = None,
    thought_signature: str = "",
) -> CareerEntry:
    return CareerEntry(
        entry_id=entry_id,
        timestamp=timestamp,
        raw_input=raw_input,
        category=category,
        skills=skills or [],
        impact_summary=impact_summary,
        confidence_score=confidence,
        evidence_links=evidence_links or [],
        refinement_state=refinement_state,
        thought_signature=thought_signature,
        question_state=question_state or QuestionState.none(),
    )


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


@pytest.fixture
def fake():
    return FakeCollaborator()


@pytest.fixture
def repository():
    repo = EntryRepository(db_path=":memory:")
    yield repo
    repo.close()
