"""Tests for the Career Memory Agent: end-to-end lifecycle scenarios."""

import asyncio
from datetime import timedelta
import threading

import pytest

from career_memory.agent.agent import CaptureStatus, CareerMemoryAgent
from career_memory.errors import (
    CollaboratorUnavailable,
    EntryNotFound,
    OperationInProgress,
    SchemaViolation,
    UserInputRejected,
)
from career_memory.models.artifact import Artifact
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import ConfidenceLevel, LifecycleStage, QuestionStatus, lifecycle_stage
from career_memory.store.repository import EntryRepository

from conftest import NOW, days_ago


def _make_agent(fake, repository=None, **config):
    return CareerMemoryAgent(
        repository=repository or EntryRepository(":memory:"),
        collaborator=fake,
        config=MemoryConfig(**config),
    )


def _capture_low(agent, fake, text="Helped with the outage", question="What did you change?"):
    fake.classifies(confidence_score="low", impact_summary="Helped during an outage.")
    fake.asks(question)
    return agent.capture(text, now=NOW)


class TestCapture:
    def test_confident_capture_stored_without_question(self, fake):
        agent = _make_agent(fake)
        fake.classifies(confidence_score="high")
        outcome = agent.capture("Shipped checkout v2 to 100% of users", now=NOW)

        assert outcome.status == CaptureStatus.STORED
        assert outcome.question is None
        assert agent.state.version == 1
        stored = agent.get_entry(outcome.entry.entry_id)
        assert stored.raw_input == "Shipped checkout v2 to 100% of users"
        assert stored.audit_log[0].action == "captured"
        assert fake.calls_to("request_clarification") == []

    def test_off_task_stores_nothing(self, fake):
        agent = _make_agent(fake)
        fake.classifies(is_off_task=True, rejection_message="Tell me about your work.")
        outcome = agent.capture("What's the weather?", now=NOW)

        assert outcome.status == CaptureStatus.OFF_TASK
        assert outcome.message == "Tell me about your work."
        assert agent.entries() == []
        assert agent.state.version == 0

    def test_collaborator_failure_stores_nothing(self, fake):
        agent = _make_agent(fake)
        fake.script("classify_entry", CollaboratorUnavailable("timeout"))
        with pytest.raises(CollaboratorUnavailable):
            agent.capture("Did stuff", now=NOW)
        assert agent.entries() == []
        assert agent.status == "idle"

    def test_question_failure_still_stores_entry(self, fake):
        agent = _make_agent(fake)
        fake.classifies(confidence_score="low")
        fake.script("request_clarification", CollaboratorUnavailable("timeout"))
        outcome = agent.capture("Helped a bit", now=NOW)

        assert outcome.status == CaptureStatus.STORED
        entry = agent.get_entry(outcome.entry.entry_id)
        assert entry.confidence_score == ConfidenceLevel.LOW
        assert entry.question_state.status == QuestionStatus.NONE


class TestDuplicates:
    def _agent_with_entry(self, fake):
        agent = _make_agent(fake)
        fake.classifies(skills=["Postgres"], confidence_score="medium")
        existing = agent.capture("Started the DB migration", now=days_ago(1)).entry
        fake.classifies(
            duplicate_risk_detected=True,
            duplicate_of=existing.entry_id,
            duplicate_confirmation_question="Same migration as yesterday?",
            skills=["Terraform"],
        )
        outcome = agent.capture("Continued the DB migration", now=NOW)
        return agent, existing, outcome

    def test_duplicate_held_for_confirmation(self, fake):
        agent, existing, outcome = self._agent_with_entry(fake)
        assert outcome.status == CaptureStatus.DUPLICATE_PENDING
        assert outcome.question == "Same migration as yesterday?"
        assert outcome.duplicate_of == existing.entry_id
        assert len(agent.entries()) == 1

    def test_link_appends_to_existing(self, fake):
        agent, existing, _ = self._agent_with_entry(fake)
        outcome = agent.resolve_duplicate("link", now=NOW)

        assert len(agent.entries()) == 1
        linked = agent.get_entry(existing.entry_id)
        assert outcome.entry.entry_id == existing.entry_id
        assert linked.raw_input == "Started the DB migration\nContinued the DB migration"
        assert linked.skills == ["Postgres", "Terraform"]
        assert linked.audit_log[-1].action == "linked_duplicate"

    def test_new_stores_separate_entry(self, fake):
        agent, _, _ = self._agent_with_entry(fake)
        agent.resolve_duplicate("new", now=NOW)
        assert len(agent.entries()) == 2

    def test_resolve_without_pending_rejected(self, fake):
        agent = _make_agent(fake)
        with pytest.raises(UserInputRejected):
            agent.resolve_duplicate("link")

    def test_bad_choice_rejected(self, fake):
        agent, _, _ = self._agent_with_entry(fake)
        with pytest.raises(UserInputRejected):
            agent.resolve_duplicate("maybe")


class TestClarificationLifecycle:
    def test_answer_lifts_confidence(self, fake):
        agent = _make_agent(fake)
        outcome = _capture_low(agent, fake)
        assert outcome.question == "What did you change?"
        assert agent.pending_questions()[0]["kind"] == "clarification"

        answered = agent.answer_clarification(outcome.entry.entry_id, "Rolled back the bad deploy")
        assert answered.confidence_score == ConfidenceLevel.HIGH
        assert lifecycle_stage(answered) == LifecycleStage.CLARIFIED
        assert agent.pending_questions() == []

    def test_skip_then_reflection_follow_up(self, fake):
        agent = _make_agent(fake)
        entry_id = _capture_low(agent, fake).entry.entry_id
        agent.skip_clarification(entry_id)

        fake.reflects([{
            "entry_id": entry_id,
            "category": "challenge",
            "impact_summary": "Helped during an outage.",
            "confidence_score": "low",
            "reflection_question": "Did the outage fix hold up this week?",
        }])
        agent.run_reflection(now=NOW)

        pending = agent.pending_questions()
        assert pending == [{
            "entry_id": entry_id,
            "kind": "reflection",
            "question": "Did the outage fix hold up this week?",
            "raw_input": "Helped with the outage",
        }]
        resolved = agent.answer_reflection(entry_id, "Yes, zero repeats")
        assert lifecycle_stage(resolved) == LifecycleStage.REFLECTION_RESOLVED
        assert resolved.confidence_score == ConfidenceLevel.HIGH

    def test_skip_reflection_returns_to_skipped(self, fake):
        agent = _make_agent(fake)
        entry_id = _capture_low(agent, fake).entry.entry_id
        agent.skip_clarification(entry_id)
        fake.reflects([{
            "entry_id": entry_id, "category": "challenge", "impact_summary": "x",
            "confidence_score": "low", "reflection_question": "Any update?",
        }])
        agent.run_reflection(now=NOW)

        skipped = agent.skip_reflection(entry_id)
        assert skipped.is_skipped

    def test_wrong_question_kind_rejected(self, fake):
        agent = _make_agent(fake)
        entry_id = _capture_low(agent, fake).entry.entry_id
        with pytest.raises(UserInputRejected):
            agent.skip_reflection(entry_id)
        with pytest.raises(UserInputRejected):
            agent.answer_reflection(entry_id, "an answer")

    def test_blank_answer_rejected_and_nothing_saved(self, fake):
        agent = _make_agent(fake)
        entry_id = _capture_low(agent, fake).entry.entry_id
        version = agent.state.version
        with pytest.raises(UserInputRejected):
            agent.answer_clarification(entry_id, "   ")
        assert agent.state.version == version

    def test_unknown_entry(self, fake):
        agent = _make_agent(fake)
        with pytest.raises(EntryNotFound):
            agent.answer_clarification("entry_missing", "hi")


class TestEvidence:
    def test_attach_persists_upgrade(self, fake):
        agent = _make_agent(fake)
        entry_id = _capture_low(agent, fake).entry.entry_id
        fake.matches(entry_id, suggested_confidence="high")

        result = agent.attach_evidence(Artifact.from_text("https://status/incident/9"), now=NOW)
        assert result.is_match
        stored = agent.get_entry(entry_id)
        assert stored.confidence_score == ConfidenceLevel.MEDIUM
        assert stored.evidence_links == ["https://status/incident/9"]

    def test_no_match_does_not_save(self, fake):
        agent = _make_agent(fake)
        entry_id = _capture_low(agent, fake).entry.entry_id
        version = agent.state.version
        fake.matches(entry_id, is_match=False, suggested_confidence="medium")
        agent.attach_evidence(Artifact.from_text("unrelated"), now=NOW)
        assert agent.state.version == version


class TestReflection:
    def test_reflection_report_persisted(self, fake):
        repository = EntryRepository(":memory:")
        agent = _make_agent(fake, repository)
        fake.classifies(confidence_score="high")
        entry_id = agent.capture("Wrote the design doc", now=NOW).entry.entry_id
        fake.reflects([{
            "entry_id": entry_id, "category": "achievement",
            "impact_summary": "Authored the storage design.", "confidence_score": "high",
        }], summary="One strong week.")

        agent.run_reflection(now=NOW)

        reloaded = CareerMemoryAgent(repository, fake, MemoryConfig())
        assert reloaded.state.last_reflection.reflection_summary == "One strong week."
        assert reloaded.state.last_reflection_at == NOW
        assert reloaded.get_entry(entry_id).impact_summary == "Authored the storage design."

    def test_failed_reflection_keeps_previous_state(self, fake):
        agent = _make_agent(fake)
        fake.classifies(confidence_score="high")
        agent.capture("Wrote the design doc", now=NOW)
        before = agent.state
        fake.reflects([{
            "entry_id": "entry_made_up", "category": "achievement",
            "impact_summary": "x", "confidence_score": "high",
        }])
        with pytest.raises(SchemaViolation):
            agent.run_reflection(now=NOW)
        assert agent.state.model_dump() == before.model_dump()
        assert agent.repository.head_version() == before.version

    def test_reflection_due(self, fake):
        agent = _make_agent(fake)
        assert agent.reflection_due(NOW)
        agent.run_reflection(now=NOW)                        # empty memory, fast path
        assert not agent.reflection_due(NOW)
        assert fake.calls == []

    def test_scheduler_runs_due_reflection_and_stops(self, fake):
        agent = _make_agent(fake, heartbeat_interval_seconds=1)

        async def _run():
            stop = asyncio.Event()
            task = asyncio.create_task(agent.run_scheduler(stop))
            while agent.state.last_reflection_at is None:
                await asyncio.sleep(0.01)
            stop.set()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(_run())
        assert agent.state.last_reflection is not None
        assert not agent._running

    def test_scheduler_does_not_retry_failed_slot(self, fake):
        agent = _make_agent(fake, heartbeat_interval_seconds=0.05)
        entry_id = _capture_low(agent, fake).entry.entry_id
        agent.skip_clarification(entry_id)              # always selected
        fake.script("weekly_reflect", CollaboratorUnavailable("timeout"))

        async def _run():
            stop = asyncio.Event()
            task = asyncio.create_task(agent.run_scheduler(stop))
            while not fake.calls_to("weekly_reflect"):
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.3)                    # several heartbeats
            stop.set()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(_run())
        assert len(fake.calls_to("weekly_reflect")) == 1
        assert agent.state.last_reflection is None
        assert agent.reflection_due()

    def test_scheduled_slot_claimed_once(self, fake):
        agent = _make_agent(fake)
        assert agent._claim_scheduled_slot(NOW)
        assert not agent._claim_scheduled_slot(NOW + timedelta(minutes=5))
        assert agent._claim_scheduled_slot(NOW + timedelta(days=7))

    def test_zero_window_rejected(self, fake):
        agent = _make_agent(fake)
        with pytest.raises(UserInputRejected):
            agent.run_reflection(now=NOW, window_days=0)
        assert agent.state.last_reflection_at is None


class TestConcurrency:
    def test_second_operation_rejected_while_busy(self, fake):
        agent = _make_agent(fake)
        started = threading.Event()
        release = threading.Event()

        class _SlowCollaborator:
            def classify_entry(self, *args):
                started.set()
                release.wait(timeout=5)
                raise CollaboratorUnavailable("slow and then failed")

        agent.classifier.collaborator = _SlowCollaborator()
        errors = []

        def _capture():
            try:
                agent.capture("x", now=NOW)
            except CollaboratorUnavailable as exc:
                errors.append(exc)

        worker = threading.Thread(target=_capture)
        worker.start()
        assert started.wait(timeout=5)

        assert agent.status == "busy"
        with pytest.raises(OperationInProgress):
            agent.answer_clarification("entry_any", "hi")
        release.set()
        worker.join(timeout=5)
        assert agent.status == "idle"
        assert len(errors) == 1


class TestSettings:
    def test_stats(self, fake):
        agent = _make_agent(fake)
        fake.classifies(confidence_score="high", evidence_links=["https://pr/1"])
        agent.capture("Shipped it", now=NOW)
        _capture_low(agent, fake)

        stats = agent.stats()
        assert stats.total_entries == 2
        assert stats.achievements == 2
        assert stats.pending_clarifications == 1
        assert stats.with_evidence == 1
        assert stats.average_confidence_percent == pytest.approx(66.5)

    def test_timezone(self, fake):
        agent = _make_agent(fake)
        assert agent.set_timezone("Europe/Berlin") == "Europe/Berlin"
        assert agent.state.timezone == "Europe/Berlin"
        with pytest.raises(UserInputRejected):
            agent.set_timezone("Mars/Olympus_Mons")

    def test_reset(self, fake):
        agent = _make_agent(fake)
        fake.classifies()
        agent.capture("Shipped it", now=NOW)
        state = agent.reset()
        assert state.entries == []
        assert agent.entries() == []
        assert agent.repository.count() == 2

    def test_appraisal_kept_until_reset(self, fake):
        agent = _make_agent(fake)
        fake.classifies()
        entry_id = agent.capture("Shipped it", now=NOW).entry.entry_id
        fake.appraises(key_achievements=[{"narrative": "Shipped it", "entry_ids": [entry_id]}])
        summary = agent.synthesize_appraisal(now=NOW)
        assert agent.last_appraisal == summary
        agent.reset()
        assert agent.last_appraisal is None


class TestScenarios:
    def test_vague_input_clarified(self, fake):
        agent = _make_agent(fake)
        fake.classifies(confidence_score="low", impact_summary="Unspecified work.")
        fake.asks("Which system did you work on, and what changed?")
        outcome = agent.capture("worked on stuff", now=NOW)
        assert len(fake.calls_to("request_clarification")) == 1

        entry = agent.answer_clarification(
            outcome.entry.entry_id, "Reduced checkout latency by 30ms", now=NOW
        )
        assert entry.confidence_score == ConfidenceLevel.HIGH
        assert entry.clarification_question is None

    def test_appraisal_request_is_off_task(self, fake):
        agent = _make_agent(fake)
        fake.classifies(is_off_task=True, rejection_message="Log your work first.")
        outcome = agent.capture("Write my appraisal now", now=NOW)
        assert outcome.status == CaptureStatus.OFF_TASK
        assert outcome.entry is None
        assert agent.entries() == []
        assert fake.calls_to("synthesize_appraisal") == []

    def test_ci_entries_merged(self, fake):
        agent = _make_agent(fake)
        fake.classifies(skills=["pytest"], evidence_links=["https://ci/1"],
                        timestamp=days_ago(3).isoformat())
        first = agent.capture("Fixed flaky CI tests", now=NOW).entry.entry_id
        fake.classifies(skills=["GitHub Actions"], evidence_links=["https://ci/2"],
                        timestamp=days_ago(1).isoformat())
        second = agent.capture("Improved CI pipeline reliability", now=NOW).entry.entry_id

        fake.reflects([{
            "entry_id": second, "merged_from": [first, second], "category": "achievement",
            "impact_summary": "Stabilised the CI pipeline.", "confidence_score": "high",
        }])
        result = agent.run_reflection(now=NOW)

        entries = agent.entries()
        assert len(entries) == 1
        assert set(entries[0].skills) >= {"pytest", "GitHub Actions"}
        assert set(entries[0].evidence_links) >= {"https://ci/1", "https://ci/2"}
        assert any(c.action == "merged" for c in result.change_log)
