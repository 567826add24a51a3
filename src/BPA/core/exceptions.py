"""
Custom exceptions for the benefits program assistant.

This module defines a hierarchy of domain-specific exceptions to provide
consistent error handling across the command engine, the record store
client and the agent pipeline.

Module Input:
    - Error conditions from various system components
    - Optional error details as dictionaries

Module Output:
    - Structured exception objects with message and details
    - Consistent error interface for catch blocks
"""
from typing import Optional, Any


class BPAError(Exception):
    """
    Base exception for all assistant errors.

    Provides a common base class for all domain-specific exceptions,
    enabling consistent error handling and reporting across modules.

    Attributes:
        message (str): Human-readable error description
        details (dict[str, Any]): Optional structured error details
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """
        Initialize exception with message and optional details.

        Args:
            message (str): Human-readable error description
            details (Optional[dict[str, Any]]): Additional structured error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(BPAError):
    """
    Raised when configuration is invalid or missing.

    Common scenarios:
        - Missing AWS credentials for Bedrock
        - Record store URL not configured
    """
    pass


class ValidationError(BPAError):
    """
    Raised when caller input is invalid.

    Common scenarios:
        - Empty query passed to the orchestrator
    """
    pass


class CommandParseError(BPAError):
    """
    Raised when a command string cannot be decoded.

    Never escapes the batch runner; it is reported as the command's error.

    Common scenarios:
        - Missing ':' after the namespace
        - Unknown operation
        - Analytics command without a kind
    """
    pass


class RecordStoreError(BPAError):
    """
    Raised when the remote record store cannot be read.

    Common scenarios:
        - Network failures and timeouts
        - Non-2xx HTTP responses (permission denied, bad path)
        - Response body is not valid JSON
    """
    pass


class AgentError(BPAError):
    """
    Raised when a model-backed text generation call fails.

    Triggers the rule-based fallback of the calling stage.

    Common scenarios:
        - Bedrock throttling or access denied
        - Generation timed out
        - Empty model response
    """
    pass


class AnalyticsError(BPAError):
    """Raised for an analytics kind the engine does not know."""
    pass


class UnsupportedOperationError(BPAError):
    """Raised for write operations (set/update) the read-only engine does not perform."""
    pass
