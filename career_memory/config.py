"""
Environment configuration.

Every setting has a default so the kernel runs with only GEMINI_API_KEY set.
"""

import os

from career_memory.models.config import MemoryConfig

# Reasoning collaborator
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
MODEL_NAME = os.getenv("CAREER_MEMORY_MODEL", "gemini-2.5-flash")
APPRAISAL_MODEL_NAME = os.getenv("CAREER_MEMORY_APPRAISAL_MODEL", "gemini-2.5-pro")

# Persistence
DB_PATH = os.getenv("CAREER_MEMORY_DB_PATH", "./data/career_memory.db")

# Logging
LOG_LEVEL = os.getenv("CAREER_MEMORY_LOG_LEVEL", "INFO").upper()

# Lifecycle tuning
REFLECTION_WINDOW_DAYS = int(os.getenv("CAREER_MEMORY_REFLECTION_WINDOW_DAYS", "7"))
REFLECTION_SCHEDULE = os.getenv("CAREER_MEMORY_REFLECTION_SCHEDULE", "0 17 * * FRI")
EVIDENCE_MATCH_THRESHOLD = float(os.getenv("CAREER_MEMORY_EVIDENCE_THRESHOLD", "0.6"))
DEFAULT_TIMEZONE = os.getenv("CAREER_MEMORY_TIMEZONE", "UTC")


def load_config() -> MemoryConfig:
    """Build a MemoryConfig from the environment."""
    return MemoryConfig(
        reflection_window_days=REFLECTION_WINDOW_DAYS,
        reflection_schedule=REFLECTION_SCHEDULE,
        evidence_match_threshold=EVIDENCE_MATCH_THRESHOLD,
        default_timezone=DEFAULT_TIMEZONE,
    )
