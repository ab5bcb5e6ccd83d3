"""Career memory data models."""

from career_memory.models.appraisal import AppraisalSummary
from career_memory.models.collaborator import (
    AchievementClaim,
    AppraisalPayload,
    ChangeLogItem,
    ClarificationPayload,
    ClassificationPayload,
    EvidencePayload,
    ReflectionDraft,
    ReflectionPayload,
)
from career_memory.models.config import MemoryConfig
from career_memory.models.entry import (
    AuditRecord,
    CareerEntry,
    ConfidenceLevel,
    EntryCategory,
    LifecycleStage,
    QuestionSource,
    QuestionState,
    QuestionStatus,
    RefinementState,
    SKIPPED_SENTINEL,
    lifecycle_stage,
    upgrade_one_step,
)
from career_memory.models.memory import MemoryState, MemoryStats, ReflectionReport

__all__ = [
    "AchievementClaim",
    "AppraisalPayload",
    "AppraisalSummary",
    "AuditRecord",
    "CareerEntry",
    "ChangeLogItem",
    "ClarificationPayload",
    "ClassificationPayload",
    "ConfidenceLevel",
    "EntryCategory",
    "EvidencePayload",
    "LifecycleStage",
    "MemoryConfig",
    "MemoryState",
    "MemoryStats",
    "QuestionSource",
    "QuestionState",
    "QuestionStatus",
    "ReflectionDraft",
    "ReflectionPayload",
    "ReflectionReport",
    "RefinementState",
    "SKIPPED_SENTINEL",
    "lifecycle_stage",
    "upgrade_one_step",
]
