"""
Weekly Reflection Engine — periodic merge and refinement of recent entries.

Selection: entries inside the trailing window, entries holding an answer
that has not been woven in yet, and entries whose question was skipped.
Everything else passes through untouched and is never sent to the
reasoning collaborator.

The collaborator proposes clusters and rewritten summaries; correctness
does not depend on its fidelity. A deterministic normalization pass owns:
  - cluster validation (every selected entry accounted for exactly once)
  - skill/evidence conservation (ordered unions, nothing dropped)
  - timestamp = most recent in the cluster
  - confidence never lowered, raised at most one step
  - question lifecycle (transitions D and the weaving-in of B/E)

An already refined entry whose draft changes nothing comes back as it was.

All-or-nothing: the engine never mutates its inputs, so a failure at any
point leaves the caller's entries exactly as they were.
"""

from datetime import datetime, timedelta
import logging
from typing import Dict, List, Optional, Tuple

from career_memory.clarification.queue import (
    ClarificationQueue,
    consume_response,
    raise_reflection_question,
)
from career_memory.classifier.normalize import (
    normalize_category,
    normalize_skills,
    parse_confidence,
)
from career_memory.errors import SchemaViolation, UserInputRejected
from career_memory.models.collaborator import ChangeLogItem, ReflectionDraft
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import (
    CareerEntry,
    QuestionState,
    QuestionStatus,
    RefinementState,
    as_utc,
    highest_confidence,
    union_preserving_order,
    upgrade_one_step,
    utc_now,
)
from career_memory.models.memory import sort_entries
from career_memory.reasoning.collaborator import ReasoningCollaborator

logger = logging.getLogger(__name__)


class ReflectionResult:
    """Result of one reflection pass."""

    def __init__(
        self,
        refined_entries: List[CareerEntry],
        reflection_summary: str,
        change_log: List[ChangeLogItem],
        touched_ids: List[str],
        merged_away_ids: List[str],
        reflected_at: datetime,
        selected_count: int = 0,
    ):
        self.refined_entries = refined_entries
        self.reflection_summary = reflection_summary
        self.change_log = change_log
        self.touched_ids = touched_ids
        self.merged_away_ids = merged_away_ids
        self.reflected_at = reflected_at
        self.selected_count = selected_count

    @property
    def merge_count(self) -> int:
        return sum(1 for item in self.change_log if item.action == "merged")

    def to_dict(self) -> dict:
        return {
            "reflection_summary": self.reflection_summary,
            "change_log": [c.model_dump(mode="json") for c in self.change_log],
            "touched_ids": self.touched_ids,
            "merged_away_ids": self.merged_away_ids,
            "reflected_at": self.reflected_at.isoformat(),
            "selected_count": self.selected_count,
            "entries": [e.model_dump(mode="json") for e in self.refined_entries],
        }


def _carried_question_state(
    sources: List[CareerEntry],
) -> Tuple[QuestionState, List[CareerEntry]]:
    """
    Single question state for a cluster, plus the sources whose open
    question it supersedes.

    Precedence: unconsumed answers (joined), then one outstanding question,
    then a skip, then consumed answers. An answer anywhere in the cluster
    closes every open question; otherwise the newest open question is kept.
    """
    states = [s.question_state for s in sources]
    answered = [s for s in states if s.status == QuestionStatus.ANSWERED]
    outstanding = [s for s in sources if s.question_state.is_outstanding]

    if answered:
        state = QuestionState.answered(
            "; ".join(s.response for s in answered), answered[0].source
        )
        return state, outstanding
    if outstanding:
        return outstanding[0].question_state, outstanding[1:]
    if any(s.status == QuestionStatus.SKIPPED for s in states):
        return QuestionState.skipped(), []
    resolved = [s for s in states if s.status == QuestionStatus.RESOLVED]
    if resolved:
        return resolved[0], []
    return QuestionState.none(), []


def _ensure_logged(change_log: List[ChangeLogItem], item: ChangeLogItem) -> None:
    for existing in change_log:
        if existing.action != item.action:
            continue
        if item.action == "merged" and set(existing.entry_ids) == set(item.entry_ids):
            return
        if item.action != "merged" and existing.result_entry_id == item.result_entry_id:
            return
    change_log.append(item)


class ReflectionEngine:
    """Runs weekly reflection passes over an entry set."""

    def __init__(
        self,
        collaborator: ReasoningCollaborator,
        config: Optional[MemoryConfig] = None,
    ):
        self.collaborator = collaborator
        self.config = config or MemoryConfig()
        self.queue = ClarificationQueue(collaborator)

    def select(
        self, entries: List[CareerEntry], window_days: int, now: datetime
    ) -> Tuple[List[CareerEntry], List[CareerEntry]]:
        """Split entries into (selected, untouched)."""
        cutoff = as_utc(now) - timedelta(days=window_days)
        selected, untouched = [], []
        for entry in entries:
            if (
                entry.timestamp >= cutoff
                or entry.has_unconsumed_response
                or entry.is_skipped
            ):
                selected.append(entry)
            else:
                untouched.append(entry)
        return selected, untouched

    def reflect(
        self,
        entries: List[CareerEntry],
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
        timezone: str = "UTC",
    ) -> ReflectionResult:
        window = self.config.reflection_window_days if window_days is None else window_days
        if window < 1:
            raise UserInputRejected("The reflection window must be at least one day.")
        now = as_utc(now) if now else utc_now()

        selected, untouched = self.select(entries, window, now)
        if not selected:
            return ReflectionResult(
                refined_entries=sort_entries(entries),
                reflection_summary=(
                    f"Nothing to analyze: no entries from the last {window} days "
                    f"and no answers or skipped questions awaiting follow-up."
                ),
                change_log=[],
                touched_ids=[],
                merged_away_ids=[],
                reflected_at=now,
            )

        selected = sort_entries(selected)
        payload = self.collaborator.weekly_reflect(
            [e.to_context() for e in selected], now, timezone
        )
        clusters = self._validate_clusters(payload.refined_entries, selected)

        change_log = list(payload.change_log)
        processed: List[CareerEntry] = []
        merged_away: List[str] = []

        for draft, sources in clusters:
            entry = self._normalize(draft, sources, now, change_log)
            entry = self._advance_questions(entry, draft, now, change_log)
            processed.append(entry)

            if len(sources) > 1:
                absorbed = [s.entry_id for s in sources if s.entry_id != entry.entry_id]
                merged_away.extend(absorbed)
                _ensure_logged(change_log, ChangeLogItem(
                    action="merged",
                    entry_ids=[s.entry_id for s in sources],
                    result_entry_id=entry.entry_id,
                    description=f"Merged {len(sources)} entries describing the same workstream.",
                ))

        summary = payload.reflection_summary.strip() or "Reflection completed with no structural changes."
        logger.info(
            "Reflection processed %d selected entries into %d (%d merged away)",
            len(selected), len(processed), len(merged_away),
        )
        return ReflectionResult(
            refined_entries=sort_entries(processed + untouched),
            reflection_summary=summary,
            change_log=change_log,
            touched_ids=[e.entry_id for e in processed],
            merged_away_ids=merged_away,
            reflected_at=now,
            selected_count=len(selected),
        )

    def _validate_clusters(
        self, drafts: List[ReflectionDraft], selected: List[CareerEntry]
    ) -> List[Tuple[ReflectionDraft, List[CareerEntry]]]:
        """Every selected entry must appear in exactly one draft, and nothing else may."""
        by_id: Dict[str, CareerEntry] = {e.entry_id: e for e in selected}
        seen: set = set()
        clusters = []

        for draft in drafts:
            source_ids = draft.source_ids()
            sources = []
            for source_id in source_ids:
                if source_id not in by_id:
                    raise SchemaViolation(
                        "weekly_reflect", f"entry {source_id!r} was not sent for reflection"
                    )
                if source_id in seen:
                    raise SchemaViolation(
                        "weekly_reflect", f"entry {source_id!r} appears in more than one result"
                    )
                seen.add(source_id)
                sources.append(by_id[source_id])
            clusters.append((draft, sort_entries(sources)))

        missing = [entry_id for entry_id in by_id if entry_id not in seen]
        if missing:
            raise SchemaViolation(
                "weekly_reflect", f"entries missing from result: {', '.join(missing)}"
            )
        return clusters

    def _normalize(
        self,
        draft: ReflectionDraft,
        sources: List[CareerEntry],
        now: datetime,
        change_log: List[ChangeLogItem],
    ) -> CareerEntry:
        """Deterministic post-processing of one proposed (possibly merged) entry."""
        newest = sources[0]
        source_ids = [s.entry_id for s in sources]
        is_merge = len(sources) > 1

        entry_id = draft.entry_id if draft.entry_id in source_ids else newest.entry_id

        if is_merge:
            raw_input = (draft.raw_input or "").strip() or "\n".join(
                s.raw_input for s in reversed(sources)
            )
            audit_log = sorted(
                (record for s in sources for record in s.audit_log),
                key=lambda r: r.timestamp,
            )
        else:
            raw_input = newest.raw_input
            audit_log = list(newest.audit_log)

        proposed = parse_confidence("weekly_reflect", draft.confidence_score)
        confidence = upgrade_one_step(
            highest_confidence([s.confidence_score for s in sources]), proposed
        )
        question_state, superseded = _carried_question_state(sources)

        entry = CareerEntry(
            entry_id=entry_id,
            timestamp=max(s.timestamp for s in sources),
            raw_input=raw_input,
            category=normalize_category(draft.category),
            skills=normalize_skills(*[s.skills for s in reversed(sources)], draft.skills),
            impact_summary=draft.impact_summary.strip() or newest.impact_summary,
            confidence_score=confidence,
            evidence_links=union_preserving_order(
                *[s.evidence_links for s in reversed(sources)], draft.evidence_links
            ),
            refinement_state=RefinementState.REFINED,
            thought_signature=(draft.thought_signature or "").strip() or newest.thought_signature,
            question_state=question_state,
            audit_log=audit_log,
        )

        if is_merge:
            entry = entry.with_audit(
                now, "merged",
                previous_value=", ".join(source_ids),
                new_value=entry_id,
            )
            for source in superseded:
                entry = entry.with_audit(
                    now, "question_superseded",
                    previous_value=source.question_state.question,
                    new_value=entry.question_state.status.value,
                )
                change_log.append(ChangeLogItem(
                    action="question_superseded",
                    entry_ids=[source.entry_id],
                    result_entry_id=entry_id,
                    description=f"Closed {source.question_state.question!r} on merge.",
                ))
        elif entry.impact_summary != newest.impact_summary:
            entry = entry.with_audit(
                now, "impact_summary_refined",
                previous_value=newest.impact_summary,
                new_value=entry.impact_summary,
            )
        elif entry.model_dump(exclude={"audit_log"}) == newest.model_dump(exclude={"audit_log"}):
            return newest
        else:
            entry = entry.with_audit(
                now, "reflected",
                previous_value=newest.refinement_state.value,
                new_value=RefinementState.REFINED.value,
            )
        return entry

    def _advance_questions(
        self,
        entry: CareerEntry,
        draft: ReflectionDraft,
        now: datetime,
        change_log: List[ChangeLogItem],
    ) -> CareerEntry:
        status = entry.question_state.status

        if status == QuestionStatus.SKIPPED:
            question = " ".join((draft.reflection_question or "").split())
            if not question:
                question = self.queue.request_question(entry, for_reflection=True)
            entry = raise_reflection_question(entry, question, now)
            _ensure_logged(change_log, ChangeLogItem(
                action="reflection_question_raised",
                entry_ids=[entry.entry_id],
                result_entry_id=entry.entry_id,
                description=question,
            ))

        elif status == QuestionStatus.ANSWERED:
            entry = consume_response(entry, now)
            _ensure_logged(change_log, ChangeLogItem(
                action="response_woven_in",
                entry_ids=[entry.entry_id],
                result_entry_id=entry.entry_id,
                description="User answer woven into the impact summary.",
            ))

        return entry
