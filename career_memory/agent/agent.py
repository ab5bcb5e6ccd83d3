"""
Career Memory Agent — the unit-of-work orchestrator.

Every user-triggered operation (capture, clarification, evidence, reflection,
appraisal) is one request/response unit. Only one unit is in flight at a
time; a second caller gets OperationInProgress instead of interleaving
with the first.

Mutations follow one discipline: read the full state, compute the next
full entry set, save it as a new version. State is loaded once at startup
and written back after every mutation.

States:
  IDLE → BUSY(operation) → IDLE
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
import logging
import threading
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from career_memory.appraisal.synthesizer import AppraisalSynthesizer
from career_memory.clarification import queue as transitions
from career_memory.clarification.queue import ClarificationQueue, needs_clarification
from career_memory.classifier.classifier import ClassificationKind, ClassifierResult, EntryClassifier
from career_memory.errors import (
    CareerMemoryError,
    CollaboratorUnavailable,
    EntryNotFound,
    OperationInProgress,
    UserInputRejected,
)
from career_memory.evidence.attacher import AttachResult, EvidenceAttacher, apply_attachment
from career_memory.models.appraisal import AppraisalSummary
from career_memory.models.artifact import Artifact
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import (
    CareerEntry,
    EntryCategory,
    QuestionStatus,
    RefinementState,
    as_utc,
    lifecycle_stage,
    union_preserving_order,
    utc_now,
)
from career_memory.models.memory import MemoryState, MemoryStats, ReflectionReport
from career_memory.reasoning.collaborator import ReasoningCollaborator
from career_memory.reflection.engine import ReflectionEngine, ReflectionResult
from career_memory.reflection.schedule import ReflectionSchedule
from career_memory.store.repository import EntryRepository
from career_memory.util.logging import structured_logger

logger = logging.getLogger(__name__)


class CaptureStatus(str, Enum):
    STORED = "stored"
    OFF_TASK = "off_task"
    DUPLICATE_PENDING = "duplicate_pending"


class DuplicateChoice(str, Enum):
    LINK = "link"
    NEW = "new"


class CaptureOutcome:
    """What happened to one piece of captured text."""

    def __init__(
        self,
        status: CaptureStatus,
        entry: Optional[CareerEntry] = None,
        message: Optional[str] = None,
        question: Optional[str] = None,
        duplicate_of: Optional[str] = None,
    ):
        self.status = status
        self.entry = entry
        self.message = message
        self.question = question
        self.duplicate_of = duplicate_of

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "entry": self.entry.model_dump(mode="json") if self.entry else None,
            "message": self.message,
            "question": self.question,
            "duplicate_of": self.duplicate_of,
        }


class CareerMemoryAgent:
    """
    Owns the memory state and routes every operation through the
    lifecycle components.
    """

    def __init__(
        self,
        repository: EntryRepository,
        collaborator: ReasoningCollaborator,
        config: Optional[MemoryConfig] = None,
    ):
        self.repository = repository
        self.collaborator = collaborator
        self.config = config or MemoryConfig()

        self.classifier = EntryClassifier(collaborator, self.config)
        self.queue = ClarificationQueue(collaborator)
        self.attacher = EvidenceAttacher(collaborator, self.config)
        self.reflection = ReflectionEngine(collaborator, self.config)
        self.synthesizer = AppraisalSynthesizer(collaborator)

        self._lock = threading.Lock()
        self._state = repository.load()
        self._pending_duplicate: Optional[ClassifierResult] = None
        self._running = False
        self._last_scheduled_attempt: Optional[datetime] = None
        self.last_appraisal: Optional[AppraisalSummary] = None
        self.log = structured_logger

    # --- Unit of work ---

    @contextmanager
    def _unit_of_work(self, operation: str):
        if not self._lock.acquire(blocking=False):
            raise OperationInProgress(
                f"Cannot start {operation}: another operation is still in progress"
            )
        try:
            yield
        except CareerMemoryError as exc:
            self.log.log_operation(operation, "failed", {"error": str(exc)})
            raise
        finally:
            self._lock.release()

    def _commit(self, entries: List[CareerEntry], **updates) -> MemoryState:
        self._state = self.repository.save(self._state.replace_entries(entries, **updates))
        return self._state

    def _require(self, entry_id: str) -> CareerEntry:
        entry = self._state.get(entry_id)
        if entry is None:
            raise EntryNotFound(entry_id)
        return entry

    def _mutate_entry(
        self,
        operation: str,
        entry_id: str,
        transition: Callable[[CareerEntry], CareerEntry],
    ) -> CareerEntry:
        with self._unit_of_work(operation):
            updated = transition(self._require(entry_id))
            self._commit([
                updated if e.entry_id == entry_id else e for e in self._state.entries
            ])
            self.log.log_transition(entry_id, operation, lifecycle_stage(updated).value)
            return updated

    @property
    def status(self) -> str:
        return "busy" if self._lock.locked() else "idle"

    @property
    def state(self) -> MemoryState:
        return self._state

    # --- Capture ---

    def capture(self, text: str, now: Optional[datetime] = None) -> CaptureOutcome:
        """Classify text and store it, or report why it was not stored."""
        now = as_utc(now) if now else utc_now()
        with self._unit_of_work("capture"):
            result = self.classifier.classify(
                text, now, self._state.entries, timezone=self._state.timezone
            )

            if result.kind == ClassificationKind.OFF_TASK:
                self.log.log_capture(text, CaptureStatus.OFF_TASK.value)
                return CaptureOutcome(CaptureStatus.OFF_TASK, message=result.rejection_message)

            if result.kind == ClassificationKind.DUPLICATE_RISK:
                self._pending_duplicate = result
                self.log.log_capture(text, CaptureStatus.DUPLICATE_PENDING.value)
                return CaptureOutcome(
                    CaptureStatus.DUPLICATE_PENDING,
                    entry=result.draft,
                    question=result.duplicate_question,
                    duplicate_of=result.duplicate_of,
                )

            entry = self._store_new(result.draft, now)
            self.log.log_capture(text, CaptureStatus.STORED.value, entry.entry_id)
            return CaptureOutcome(
                CaptureStatus.STORED,
                entry=entry,
                question=entry.clarification_question,
            )

    def _store_new(self, draft: CareerEntry, now: datetime) -> CareerEntry:
        entry = draft.with_audit(now, "captured", new_value=draft.confidence_score.value)
        if needs_clarification(entry):
            try:
                entry = self.queue.enqueue(entry, now)
            except CollaboratorUnavailable as exc:
                # The entry is kept; it simply has no question
                logger.warning("Clarification question for %s failed: %s", entry.entry_id, exc)
        self._commit(self._state.entries + [entry])
        return entry

    def resolve_duplicate(self, choice: str, now: Optional[datetime] = None) -> CaptureOutcome:
        """Link the held capture to its existing entry, or log it as new."""
        now = as_utc(now) if now else utc_now()
        with self._unit_of_work("resolve_duplicate"):
            pending = self._pending_duplicate
            if pending is None:
                raise UserInputRejected("No capture is waiting for a duplicate decision.")
            try:
                decision = DuplicateChoice(choice.strip().lower())
            except ValueError:
                raise UserInputRejected("Choose 'link' or 'new'.") from None

            if decision == DuplicateChoice.NEW:
                entry = self._store_new(pending.draft, now)
                self._pending_duplicate = None
                return CaptureOutcome(
                    CaptureStatus.STORED, entry=entry, question=entry.clarification_question
                )

            target = self._state.get(pending.duplicate_of or "")
            if target is None:
                raise UserInputRejected(
                    "The matching entry no longer exists; log this as new instead."
                )
            linked = target.with_audit(
                now,
                "linked_duplicate",
                new_value=pending.draft.raw_input,
                raw_input=f"{target.raw_input}\n{pending.draft.raw_input}",
                skills=union_preserving_order(target.skills, pending.draft.skills, casefold=True),
                evidence_links=union_preserving_order(
                    target.evidence_links, pending.draft.evidence_links
                ),
                refinement_state=RefinementState.PENDING,
            )
            self._commit([
                linked if e.entry_id == linked.entry_id else e for e in self._state.entries
            ])
            self._pending_duplicate = None
            return CaptureOutcome(
                CaptureStatus.STORED,
                entry=linked,
                message="Linked to the existing entry.",
                duplicate_of=linked.entry_id,
            )

    # --- Clarification queue ---

    def answer_clarification(
        self, entry_id: str, response: str, now: Optional[datetime] = None
    ) -> CareerEntry:
        now = as_utc(now) if now else utc_now()
        return self._mutate_entry(
            "answer_clarification", entry_id,
            lambda e: transitions.answer_clarification(e, response, now),
        )

    def skip_clarification(self, entry_id: str, now: Optional[datetime] = None) -> CareerEntry:
        now = as_utc(now) if now else utc_now()

        def _skip(entry: CareerEntry) -> CareerEntry:
            if entry.question_state.status != QuestionStatus.AWAITING_CLARIFICATION:
                raise UserInputRejected(f"Entry {entry_id} has no open clarification question.")
            return transitions.skip_clarification(entry, now)

        return self._mutate_entry("skip_clarification", entry_id, _skip)

    def answer_reflection(
        self, entry_id: str, response: str, now: Optional[datetime] = None
    ) -> CareerEntry:
        now = as_utc(now) if now else utc_now()
        return self._mutate_entry(
            "answer_reflection", entry_id,
            lambda e: transitions.answer_reflection(e, response, now),
        )

    def skip_reflection(self, entry_id: str, now: Optional[datetime] = None) -> CareerEntry:
        now = as_utc(now) if now else utc_now()

        def _skip(entry: CareerEntry) -> CareerEntry:
            if entry.question_state.status != QuestionStatus.AWAITING_REFLECTION:
                raise UserInputRejected(f"Entry {entry_id} has no open reflection question.")
            return transitions.skip_clarification(entry, now)

        return self._mutate_entry("skip_reflection", entry_id, _skip)

    def pending_questions(self) -> List[Dict[str, str]]:
        """Outstanding questions, newest entry first."""
        pending = []
        for entry in self._state.entries:
            state = entry.question_state
            if state.is_outstanding:
                pending.append({
                    "entry_id": entry.entry_id,
                    "kind": (
                        "clarification"
                        if state.status == QuestionStatus.AWAITING_CLARIFICATION
                        else "reflection"
                    ),
                    "question": state.question,
                    "raw_input": entry.raw_input,
                })
        return pending

    # --- Evidence ---

    def attach_evidence(self, artifact: Artifact, now: Optional[datetime] = None) -> AttachResult:
        now = as_utc(now) if now else utc_now()
        with self._unit_of_work("attach_evidence"):
            result = self.attacher.attach(artifact, self._state.entries)
            if result.is_match:
                self._commit(apply_attachment(self._state.entries, result, artifact, now))
            self.log.log_operation(
                "attach_evidence",
                "matched" if result.is_match else "no_match",
                {"label": artifact.display_label, "match_id": result.match_id},
            )
            return result

    # --- Reflection ---

    def run_reflection(
        self, now: Optional[datetime] = None, window_days: Optional[int] = None
    ) -> ReflectionResult:
        now = as_utc(now) if now else utc_now()
        with self._unit_of_work("reflection"):
            result = self.reflection.reflect(
                self._state.entries,
                window_days=window_days,
                now=now,
                timezone=self._state.timezone,
            )
            report = ReflectionReport(
                reflection_summary=result.reflection_summary,
                change_log=result.change_log,
                touched_entry_ids=result.touched_ids,
                reflected_at=result.reflected_at,
            )
            self._commit(
                result.refined_entries,
                last_reflection=report,
                last_reflection_at=result.reflected_at,
            )
            self.log.log_reflection(
                result.selected_count, len(result.touched_ids), result.merge_count
            )
            return result

    def _schedule(self) -> ReflectionSchedule:
        return ReflectionSchedule(self.config.reflection_schedule, self._state.timezone)

    def reflection_due(self, now: Optional[datetime] = None) -> bool:
        return self._schedule().is_due(self._state.last_reflection_at, now or utc_now())

    def next_reflection(self, now: Optional[datetime] = None) -> datetime:
        return self._schedule().next_run(now or utc_now())

    def _claim_scheduled_slot(self, now: datetime) -> bool:
        """True once per scheduled slot; a failed slot is not retried."""
        if not self.reflection_due(now):
            return False
        slot = self._schedule().previous_run(now)
        if slot == self._last_scheduled_attempt:
            return False
        self._last_scheduled_attempt = slot
        return True

    async def run_scheduler(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run scheduled reflections until `stop_event` is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                if self._claim_scheduled_slot(utc_now()):
                    try:
                        await asyncio.to_thread(self.run_reflection)
                    except CareerMemoryError as exc:
                        logger.warning("Scheduled reflection did not run: %s", exc)
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.config.heartbeat_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False

    # --- Appraisal ---

    def synthesize_appraisal(self, now: Optional[datetime] = None) -> AppraisalSummary:
        with self._unit_of_work("synthesize_appraisal"):
            summary = self.synthesizer.synthesize(self._state.entries, now=now)
            self.last_appraisal = summary
            self.log.log_operation(
                "synthesize_appraisal", "success",
                {"achievements": len(summary.key_achievements),
                 "unverified": len(summary.unverified_entry_ids)},
            )
            return summary

    # --- Queries and settings ---

    def entries(self) -> List[CareerEntry]:
        return list(self._state.entries)

    def get_entry(self, entry_id: str) -> CareerEntry:
        return self._require(entry_id)

    def stats(self) -> MemoryStats:
        entries = self._state.entries
        if not entries:
            return MemoryStats()
        statuses = [e.question_state.status for e in entries]
        return MemoryStats(
            total_entries=len(entries),
            achievements=sum(1 for e in entries if e.category == EntryCategory.ACHIEVEMENT),
            challenges=sum(1 for e in entries if e.category == EntryCategory.CHALLENGE),
            learnings=sum(1 for e in entries if e.category == EntryCategory.LEARNING),
            pending_clarifications=statuses.count(QuestionStatus.AWAITING_CLARIFICATION),
            pending_reflections=statuses.count(QuestionStatus.AWAITING_REFLECTION),
            skipped=statuses.count(QuestionStatus.SKIPPED),
            with_evidence=sum(1 for e in entries if e.evidence_links),
            average_confidence_percent=round(
                sum(e.confidence_score.percent for e in entries) / len(entries), 1
            ),
        )

    def set_timezone(self, timezone: str) -> str:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise UserInputRejected(f"Unknown timezone: {timezone!r}") from None
        with self._unit_of_work("set_timezone"):
            self._commit(self._state.entries, timezone=timezone)
            return timezone

    def reset(self) -> MemoryState:
        """Clear the whole entry set."""
        with self._unit_of_work("reset"):
            self._state = self.repository.reset()
            self._pending_duplicate = None
            self.last_appraisal = None
            self.log.log_operation("reset", "success", {"version": self._state.version})
            return self._state
