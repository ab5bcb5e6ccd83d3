"""Memory configuration."""

from pydantic import BaseModel, Field


class MemoryConfig(BaseModel):
    """Configuration for the career memory agent and its components."""

    reflection_window_days: int = Field(default=7, ge=1)
    reflection_schedule: str = "0 17 * * FRI"      # Cron expression
    heartbeat_interval_seconds: float = 300.0
    evidence_match_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_backdate_days: int = 365
    future_tolerance_hours: int = 24
    duplicate_context_size: int = 20
    default_timezone: str = "UTC"
