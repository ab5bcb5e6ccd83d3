"""
Evidence Attacher — matches an artifact to at most one existing entry.

Behavioral Contract:
- Proposes a match via the reasoning collaborator; accepts it only above
  the configured match threshold
- A matched entry gains the artifact label, one confidence step toward the
  suggestion, refinement_state=refined and an audit record
- An artifact is never split across entries; no match mutates nothing
"""

from datetime import datetime
from typing import List, Optional

from career_memory.classifier.normalize import parse_confidence
from career_memory.errors import SchemaViolation, UserInputRejected
from career_memory.models.artifact import Artifact
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import (
    CareerEntry,
    ConfidenceLevel,
    RefinementState,
    upgrade_one_step,
)
from career_memory.reasoning.collaborator import ReasoningCollaborator


NO_MATCH_MESSAGE = "No stored entry is clearly supported by this artifact."


class AttachResult:
    """Outcome of matching one artifact."""

    def __init__(
        self,
        match_id: Optional[str],
        is_match: bool,
        suggested_confidence: ConfidenceLevel,
        reasoning: str,
        match_confidence: Optional[float] = None,
    ):
        self.match_id = match_id
        self.is_match = is_match
        self.suggested_confidence = suggested_confidence
        self.reasoning = reasoning
        self.match_confidence = match_confidence

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "is_match": self.is_match,
            "suggested_confidence": self.suggested_confidence.value,
            "reasoning": self.reasoning,
            "match_confidence": self.match_confidence,
        }


def entry_signature_context(entry: CareerEntry) -> dict:
    return {
        "id": entry.entry_id,
        "summary": entry.impact_summary,
        "signature": entry.thought_signature,
        "category": entry.category.value,
        "raw": entry.raw_input,
        "timestamp": entry.timestamp.isoformat(),
    }


class EvidenceAttacher:
    """Finds the entry an artifact supports."""

    def __init__(
        self,
        collaborator: ReasoningCollaborator,
        config: Optional[MemoryConfig] = None,
    ):
        self.collaborator = collaborator
        self.config = config or MemoryConfig()

    def attach(self, artifact: Artifact, entries: List[CareerEntry]) -> AttachResult:
        if not entries:
            raise UserInputRejected("Log at least one entry before attaching evidence.")

        payload = self.collaborator.attach_evidence(
            artifact, [entry_signature_context(e) for e in entries]
        )

        suggested = parse_confidence("attach_evidence", payload.suggested_confidence)
        if suggested == ConfidenceLevel.LOW:
            raise SchemaViolation(
                "attach_evidence", "suggested_confidence must be medium or high"
            )

        known_ids = {e.entry_id for e in entries}
        if payload.is_match and payload.match_id not in known_ids:
            raise SchemaViolation(
                "attach_evidence", f"match_id {payload.match_id!r} is not a stored entry"
            )

        # A collaborator that omits its score is taken at its word
        score = payload.match_confidence if payload.match_confidence is not None else 1.0
        accepted = payload.is_match and score >= self.config.evidence_match_threshold

        reasoning = payload.reasoning.strip()
        if not accepted and not reasoning:
            reasoning = NO_MATCH_MESSAGE
        return AttachResult(
            match_id=payload.match_id if accepted else None,
            is_match=accepted,
            suggested_confidence=suggested,
            reasoning=reasoning,
            match_confidence=payload.match_confidence,
        )


def apply_attachment(
    entries: List[CareerEntry],
    result: AttachResult,
    artifact: Artifact,
    now: datetime,
) -> List[CareerEntry]:
    """
    Next entry list after an attach call. Only the matched entry changes;
    without a match the input list is returned as is.
    """
    if not result.is_match:
        return entries

    updated: List[CareerEntry] = []
    for entry in entries:
        if entry.entry_id != result.match_id:
            updated.append(entry)
            continue
        links = list(entry.evidence_links)
        if artifact.display_label not in links:
            links.append(artifact.display_label)
        new_confidence = upgrade_one_step(entry.confidence_score, result.suggested_confidence)
        updated.append(
            entry.with_audit(
                now,
                "evidence_attached",
                previous_value=entry.confidence_score.value,
                new_value=f"{artifact.display_label}: {result.reasoning}",
                evidence_links=links,
                confidence_score=new_confidence,
                refinement_state=RefinementState.REFINED,
            )
        )
    return updated
