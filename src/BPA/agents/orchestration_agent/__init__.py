"""
Orchestration Agent for the benefits assistant.

Runs the answer pipeline: intent identification, command execution over
the benefit snapshot, and interpretation of the results.
"""

from .wrapper import (
    ALL_COMMANDS_FAILED_MESSAGE,
    NO_COMMANDS_MESSAGE,
    PIPELINE_ERROR_MESSAGE,
    OrchestrationAgent,
)

__all__ = [
    "OrchestrationAgent",
    "NO_COMMANDS_MESSAGE",
    "ALL_COMMANDS_FAILED_MESSAGE",
    "PIPELINE_ERROR_MESSAGE",
]
