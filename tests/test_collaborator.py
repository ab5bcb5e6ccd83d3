"""Tests for the Gemini-backed reasoning collaborator and payload parsing."""

import json

import pytest

from career_memory.errors import CollaboratorUnavailable, SchemaViolation
from career_memory.models.artifact import Artifact
from career_memory.models.collaborator import ClarificationPayload, EvidencePayload
from career_memory.reasoning import prompts
from career_memory.reasoning.collaborator import GeminiCollaborator, parse_payload

from conftest import NOW, make_entry


class _Response:
    def __init__(self, text):
        self.text = text


class _Models:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return _Response(self.outcome)


class _Client:
    def __init__(self, outcome):
        self.models = _Models(outcome)


def _make_collaborator(outcome):
    return GeminiCollaborator(
        model="test-flash", appraisal_model="test-pro", client=_Client(outcome)
    )


class TestParsePayload:
    def test_valid(self):
        payload = parse_payload("op", '{"question": "How many?"}', ClarificationPayload)
        assert payload.question == "How many?"

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_is_unavailable(self, text):
        with pytest.raises(CollaboratorUnavailable) as exc_info:
            parse_payload("op", text, ClarificationPayload)
        assert not isinstance(exc_info.value, SchemaViolation)

    def test_wrong_type_is_violation(self):
        text = json.dumps({
            "match_id": "e1", "is_match": True, "suggested_confidence": "high",
            "reasoning": "ok", "match_confidence": 3.5,
        })
        with pytest.raises(SchemaViolation) as exc_info:
            parse_payload("attach_evidence", text, EvidencePayload)
        assert exc_info.value.operation == "attach_evidence"


class TestGeminiCollaborator:
    def test_missing_key_without_client(self, monkeypatch):
        monkeypatch.setattr("career_memory.config.GEMINI_API_KEY", None)
        with pytest.raises(CollaboratorUnavailable):
            GeminiCollaborator()

    def test_classify_uses_json_mode(self):
        collaborator = _make_collaborator(json.dumps({
            "is_off_task": False, "duplicate_risk_detected": False,
            "category": "learning", "impact_summary": "Learned Rust.",
            "confidence_score": "medium",
        }))
        payload = collaborator.classify_entry("Learned Rust basics", NOW, "UTC", [])

        assert payload.category == "learning"
        call = collaborator._client.models.calls[0]
        assert call["model"] == "test-flash"
        assert call["config"].response_mime_type == "application/json"
        assert "Learned Rust basics" in call["contents"][0]

    def test_appraisal_uses_appraisal_model(self):
        collaborator = _make_collaborator(json.dumps({
            "executive_summary": "Good year.", "key_achievements": [],
            "skills_and_growth": "Broad.", "areas_for_development": [], "gap_analysis": "",
        }))
        collaborator.synthesize_appraisal([make_entry().to_context()])
        assert collaborator._client.models.calls[0]["model"] == "test-pro"

    def test_image_evidence_sent_as_part(self):
        collaborator = _make_collaborator(json.dumps({
            "match_id": "entry_1", "is_match": True,
            "suggested_confidence": "high", "reasoning": "Dashboard shows the drop.",
        }))
        artifact = Artifact.from_upload(b"\x89PNG", "image/png", "latency.png")
        collaborator.attach_evidence(artifact, [{"id": "entry_1", "summary": "Cut latency"}])
        assert len(collaborator._client.models.calls[0]["contents"]) == 2

    def test_transport_error_is_unavailable(self):
        collaborator = _make_collaborator(ConnectionError("reset by peer"))
        with pytest.raises(CollaboratorUnavailable):
            collaborator.request_clarification(make_entry().to_context())

    def test_garbage_is_violation(self):
        collaborator = _make_collaborator("I think the answer is yes")
        with pytest.raises(SchemaViolation):
            collaborator.request_clarification(make_entry().to_context())


class TestPrompts:
    def test_clarification_prompt_mentions_entry(self):
        text = prompts.clarification_prompt(make_entry(raw_input="Fixed the build").to_context())
        assert "Fixed the build" in text

    def test_reflection_prompt_lists_entries(self):
        entries = [make_entry("entry_a").to_context(), make_entry("entry_b").to_context()]
        text = prompts.reflection_prompt(entries, NOW, "UTC")
        assert "entry_a" in text and "entry_b" in text
