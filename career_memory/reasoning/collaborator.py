"""
Reasoning Collaborator — the boundary to the LLM service.

Five operations, each a typed request/response contract. The kernel never
duck-types collaborator output into the pipeline: every response is
validated against its payload model and any mismatch is a hard failure
of that call.

Behavioral Contract:
- No output → CollaboratorUnavailable
- Malformed JSON, missing required field, wrong type → SchemaViolation
- No retries; the caller decides whether to re-submit
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, ValidationError

from career_memory import config
from career_memory.errors import CollaboratorUnavailable, SchemaViolation
from career_memory.models.artifact import Artifact
from career_memory.models.collaborator import (
    AppraisalPayload,
    ClarificationPayload,
    ClassificationPayload,
    EvidencePayload,
    ReflectionPayload,
)
from career_memory.reasoning import prompts
from career_memory.util.logging import structured_logger

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def parse_payload(operation: str, text: Optional[str], model: Type[PayloadT]) -> PayloadT:
    """Strictly deserialize a collaborator response."""
    if text is None or not text.strip():
        raise CollaboratorUnavailable(f"{operation}: no response from collaborator")
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        raise SchemaViolation(operation, str(exc)) from exc


class ReasoningCollaborator(Protocol):
    """Protocol for the reasoning collaborator — pluggable backend."""

    def classify_entry(
        self,
        text: str,
        now: datetime,
        timezone: str,
        existing_entries: List[Dict[str, Any]],
    ) -> ClassificationPayload: ...

    def request_clarification(
        self, entry: Dict[str, Any], for_reflection: bool = False
    ) -> ClarificationPayload: ...

    def attach_evidence(
        self, artifact: Artifact, entries: List[Dict[str, Any]]
    ) -> EvidencePayload: ...

    def weekly_reflect(
        self, entries: List[Dict[str, Any]], now: datetime, timezone: str
    ) -> ReflectionPayload: ...

    def synthesize_appraisal(self, entries: List[Dict[str, Any]]) -> AppraisalPayload: ...


class GeminiCollaborator:
    """
    Gemini-backed reasoning collaborator.

    Uses JSON response mode with the payload model as the response schema,
    then validates the returned text again on our side.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        appraisal_model: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ):
        key = api_key or config.GEMINI_API_KEY
        if client is None and not key:
            raise CollaboratorUnavailable(
                "Missing GEMINI_API_KEY: set it in the environment or pass api_key"
            )
        self._client = client or genai.Client(api_key=key)
        self.model = model or config.MODEL_NAME
        self.appraisal_model = appraisal_model or config.APPRAISAL_MODEL_NAME

    def _generate(
        self,
        operation: str,
        contents: List[Any],
        schema: Type[PayloadT],
        model: Optional[str] = None,
    ) -> PayloadT:
        model_name = model or self.model
        logger.debug("Calling %s for %s", model_name, operation)
        try:
            response = self._client.models.generate_content(
                model=model_name,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=schema,
                ),
            )
        except genai_errors.APIError as exc:
            structured_logger.log_collaborator_call(operation, "failed", {"error": str(exc)})
            raise CollaboratorUnavailable(f"{operation}: {exc}") from exc
        except Exception as exc:
            # Transport failures from the underlying HTTP client
            structured_logger.log_collaborator_call(operation, "failed", {"error": str(exc)})
            raise CollaboratorUnavailable(f"{operation}: {exc}") from exc
        structured_logger.log_collaborator_call(operation, "success", {"model": model_name})
        return parse_payload(operation, response.text, schema)

    def classify_entry(
        self,
        text: str,
        now: datetime,
        timezone: str,
        existing_entries: List[Dict[str, Any]],
    ) -> ClassificationPayload:
        prompt = prompts.classify_prompt(text, now, timezone, existing_entries)
        return self._generate("classify_entry", [prompt], ClassificationPayload)

    def request_clarification(
        self, entry: Dict[str, Any], for_reflection: bool = False
    ) -> ClarificationPayload:
        prompt = prompts.clarification_prompt(entry, for_reflection=for_reflection)
        return self._generate("request_clarification", [prompt], ClarificationPayload)

    def attach_evidence(
        self, artifact: Artifact, entries: List[Dict[str, Any]]
    ) -> EvidencePayload:
        prompt = prompts.evidence_prompt(artifact.text(), artifact.mime_type, entries)
        contents: List[Any] = [prompt]
        if artifact.is_image and isinstance(artifact.content, bytes):
            contents.append(
                types.Part.from_bytes(data=artifact.content, mime_type=artifact.mime_type)
            )
        return self._generate("attach_evidence", contents, EvidencePayload)

    def weekly_reflect(
        self, entries: List[Dict[str, Any]], now: datetime, timezone: str
    ) -> ReflectionPayload:
        prompt = prompts.reflection_prompt(entries, now, timezone)
        return self._generate("weekly_reflect", [prompt], ReflectionPayload)

    def synthesize_appraisal(self, entries: List[Dict[str, Any]]) -> AppraisalPayload:
        prompt = prompts.appraisal_prompt(entries)
        return self._generate(
            "synthesize_appraisal", [prompt], AppraisalPayload, model=self.appraisal_model
        )
