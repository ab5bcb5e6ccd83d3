"""Structured operation logging for the career memory agent."""

import logging
from typing import Any, Dict, Optional

from career_memory import config


def _truncate(text: str, limit: int = 50) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class StructuredLogger:
    """Structured logger for agent operations, transitions and collaborator calls."""

    def __init__(self, name: str = "career_memory"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(config.LOG_LEVEL)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Optional[Dict[str, Any]] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status == "failed":
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_capture(self, text: str, outcome: str, entry_id: Optional[str] = None):
        details = {"input": _truncate(text)}
        if entry_id:
            details["entry_id"] = entry_id
        self.log_operation("capture", outcome, details)

    def log_transition(self, entry_id: str, transition: str, new_stage: str):
        self.log_operation(
            f"lifecycle.{transition}", "success",
            {"entry_id": entry_id, "stage": new_stage},
        )

    def log_collaborator_call(self, call: str, status: str, details: Optional[Dict[str, Any]] = None):
        self.log_operation(f"collaborator.{call}", status, details)

    def log_reflection(self, selected: int, touched: int, merges: int, status: str = "success"):
        self.log_operation(
            "reflection", status,
            {"selected": selected, "touched": touched, "merges": merges},
        )


structured_logger = StructuredLogger()
