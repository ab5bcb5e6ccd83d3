"""
Career Memory API — FastAPI endpoints.

Exposes the agent's operations via a REST API for:
- Capture and duplicate resolution
- Clarification and reflection questions
- Evidence attachment
- Weekly reflection
- Appraisal synthesis
- Settings and memory reset
"""

import base64
import binascii
from contextlib import contextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from career_memory import config as env_config
from career_memory.agent.agent import CareerMemoryAgent
from career_memory.errors import (
    CollaboratorUnavailable,
    EntryNotFound,
    OperationInProgress,
    SchemaViolation,
    UserInputRejected,
)
from career_memory.models.artifact import Artifact
from career_memory.models.config import MemoryConfig
from career_memory.reasoning.collaborator import GeminiCollaborator, ReasoningCollaborator
from career_memory.store.repository import EntryRepository


# --- Request/Response Models ---

class CaptureRequest(BaseModel):
    text: str


class DuplicateResolveRequest(BaseModel):
    choice: str                             # "link" | "new"


class AnswerRequest(BaseModel):
    response: str


class EvidenceRequest(BaseModel):
    content: Optional[str] = None           # URL or pasted text
    content_base64: Optional[str] = None    # Binary upload
    mime_type: str = "text/plain"
    display_label: Optional[str] = None


class ReflectionRequest(BaseModel):
    window_days: Optional[int] = Field(default=None, ge=1)


class TimezoneRequest(BaseModel):
    timezone: str


@contextmanager
def _http_errors():
    """Translate kernel errors into HTTP responses."""
    try:
        yield
    except EntryNotFound as exc:
        raise HTTPException(404, str(exc))
    except OperationInProgress as exc:
        raise HTTPException(409, str(exc))
    except UserInputRejected as exc:
        raise HTTPException(400, str(exc))
    except SchemaViolation as exc:
        raise HTTPException(502, f"Invalid response from reasoning service: {exc.detail}")
    except CollaboratorUnavailable as exc:
        raise HTTPException(502, str(exc))


def _artifact_from_request(req: EvidenceRequest) -> Artifact:
    if req.content_base64:
        try:
            data = base64.b64decode(req.content_base64, validate=True)
        except binascii.Error:
            raise HTTPException(400, "content_base64 is not valid base64")
        return Artifact.from_upload(data, req.mime_type, req.display_label or "upload")
    if req.content and req.content.strip():
        if req.content.startswith("data:"):
            try:
                return Artifact.from_data_url(req.content, req.display_label or "upload")
            except ValueError as exc:
                raise HTTPException(400, str(exc))
        return Artifact.from_text(req.content.strip(), req.display_label or "")
    raise HTTPException(400, "Provide content or content_base64")


# --- Application Factory ---

def create_app(
    repository: Optional[EntryRepository] = None,
    collaborator: Optional[ReasoningCollaborator] = None,
    config: Optional[MemoryConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Career Memory API",
        description="Career Memory Kernel — capture, refine and synthesize work activity",
        version="0.1.0-alpha",
    )

    cfg = config or env_config.load_config()
    repo = repository or EntryRepository(
        db_path=env_config.DB_PATH, default_timezone=cfg.default_timezone
    )
    agent = CareerMemoryAgent(
        repository=repo,
        collaborator=collaborator or GeminiCollaborator(),
        config=cfg,
    )

    app.state.repository = repo
    app.state.agent = agent

    # === ENTRIES ===

    @app.post("/entries")
    def capture_entry(req: CaptureRequest):
        """Capture a free-text work activity."""
        with _http_errors():
            return agent.capture(req.text).to_dict()

    @app.get("/entries")
    def list_entries():
        """All entries, newest first."""
        return [e.model_dump(mode="json") for e in agent.entries()]

    @app.post("/entries/duplicate/resolve")
    def resolve_duplicate(req: DuplicateResolveRequest):
        """Link the held capture to the existing entry, or log it as new."""
        with _http_errors():
            return agent.resolve_duplicate(req.choice).to_dict()

    @app.get("/entries/{entry_id}")
    def get_entry(entry_id: str):
        with _http_errors():
            return agent.get_entry(entry_id).model_dump(mode="json")

    # === QUESTIONS ===

    @app.get("/questions/pending")
    def pending_questions():
        """Outstanding clarification and reflection questions."""
        return agent.pending_questions()

    @app.post("/entries/{entry_id}/clarification")
    def answer_clarification(entry_id: str, req: AnswerRequest):
        with _http_errors():
            return agent.answer_clarification(entry_id, req.response).model_dump(mode="json")

    @app.post("/entries/{entry_id}/clarification/skip")
    def skip_clarification(entry_id: str):
        with _http_errors():
            return agent.skip_clarification(entry_id).model_dump(mode="json")

    @app.post("/entries/{entry_id}/reflection")
    def answer_reflection(entry_id: str, req: AnswerRequest):
        with _http_errors():
            return agent.answer_reflection(entry_id, req.response).model_dump(mode="json")

    @app.post("/entries/{entry_id}/reflection/skip")
    def skip_reflection(entry_id: str):
        with _http_errors():
            return agent.skip_reflection(entry_id).model_dump(mode="json")

    # === EVIDENCE ===

    @app.post("/evidence")
    def attach_evidence(req: EvidenceRequest):
        """Match an artifact to the entry it supports."""
        artifact = _artifact_from_request(req)
        with _http_errors():
            return agent.attach_evidence(artifact).to_dict()

    # === REFLECTION ===

    @app.post("/reflection")
    def run_reflection(req: Optional[ReflectionRequest] = None):
        """Run a reflection pass now."""
        window = req.window_days if req else None
        with _http_errors():
            return agent.run_reflection(window_days=window).to_dict()

    @app.get("/reflection/last")
    def last_reflection():
        report = agent.state.last_reflection
        if report is None:
            raise HTTPException(404, "No reflection has run yet")
        return report.model_dump(mode="json")

    @app.get("/reflection/schedule")
    def reflection_schedule():
        return {
            "schedule": cfg.reflection_schedule,
            "timezone": agent.state.timezone,
            "due": agent.reflection_due(),
            "next_run": agent.next_reflection().isoformat(),
            "last_run": (
                agent.state.last_reflection_at.isoformat()
                if agent.state.last_reflection_at
                else None
            ),
        }

    # === APPRAISAL ===

    @app.post("/appraisal")
    def synthesize_appraisal():
        """Generate (or regenerate) the appraisal summary."""
        with _http_errors():
            return agent.synthesize_appraisal().model_dump(mode="json")

    # === DASHBOARD & SETTINGS ===

    @app.get("/stats")
    def stats():
        return agent.stats().model_dump()

    @app.get("/settings/timezone")
    def get_timezone():
        return {"timezone": agent.state.timezone}

    @app.put("/settings/timezone")
    def set_timezone(req: TimezoneRequest):
        with _http_errors():
            return {"timezone": agent.set_timezone(req.timezone)}

    @app.delete("/memory")
    def reset_memory():
        """Clear every stored entry."""
        with _http_errors():
            state = agent.reset()
            return {"status": "cleared", "version": state.version}

    return app

