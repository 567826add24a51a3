"""
Centralized configuration management using Pydantic.

This module defines the Settings class which loads and validates application
configuration from environment variables or .env file.

Module Input:
    - Environment variables from OS
    - .env file in project root (optional)
    - Default values defined in class

Module Output:
    - Validated configuration object (singleton)
    - Helper methods for record store URL resolution
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables and .env file.

    Uses Pydantic's BaseSettings to provide validated configuration with
    automatic type conversion and environment variable loading. Supports
    both development (.env file) and production (environment variables)
    configuration methods.

    Attributes:
        AWS Configuration:
            aws_access_key_id (Optional[str]): AWS access key for API calls
            aws_secret_access_key (Optional[str]): AWS secret key
            aws_default_region (str): Default AWS region (default: "us-east-1")
            aws_profile (Optional[str]): Named AWS profile to use

        AWS Bedrock Configuration:
            bedrock_model_id (str): Model used to generate commands (stage 1)
            bedrock_interpretation_model_id (Optional[str]): Model used to narrate
                results (stage 3); falls back to bedrock_model_id
            llm_enabled (bool): Disable to force the rule-based fallbacks
            llm_max_tokens (int): Max tokens per generation
            llm_temperature (float): Sampling temperature
            llm_timeout_sec (float): Upper bound for a single generation call

        Record Store Configuration:
            record_store_url (Optional[str]): Base URL of the realtime database
            record_store_auth_token (Optional[str]): Database secret / ID token
            record_store_timeout_sec (float): HTTP timeout per request

        Engine Configuration:
            command_prefix (str): Namespace every command must start with
            snapshot_ttl_seconds (int): Snapshot cache validity window
            benefits_root_paths (List[str]): Ordered roots probed for the snapshot
            query_fallback_root (str): Last root probed by query/count
            benefits_collection (str): Collection used by generated queries

        Logging Configuration:
            log_level (str): Minimum log level (default: "INFO")
            log_dir (Path): Directory for log files (default: "logs")
            log_file (str): Log file name (default: "app.log")
    """

    # ---------------- AWS Configuration ----------------
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_default_region: str = "us-east-1"
    aws_profile: Optional[str] = None

    # ---------------- AWS Bedrock Configuration ----------------
    bedrock_model_id: str = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    bedrock_interpretation_model_id: Optional[str] = None
    llm_enabled: bool = True
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.3
    llm_timeout_sec: float = 30.0

    # ---------------- Record Store ----------------
    record_store_url: Optional[str] = None
    record_store_auth_token: Optional[str] = None
    record_store_timeout_sec: float = 15.0

    # ---------------- Engine ----------------
    command_prefix: str = "fb"
    snapshot_ttl_seconds: int = 300
    benefits_root_paths: List[str] = ["firestore", "realtime/firestore"]
    query_fallback_root: str = "firestore"
    benefits_collection: str = "userBenefits"
    history_max_entries: int = 20

    # ---------------- Logging ----------------
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_file: str = "app.log"

    # ---------------- Pydantic Settings ----------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------------- Helper Methods ----------------
    @property
    def interpretation_model_id(self) -> str:
        """Model ID for stage 3, defaulting to the stage 1 model."""
        return self.bedrock_interpretation_model_id or self.bedrock_model_id

    def get_record_store_url(self, path: str) -> str:
        """
        Build the REST URL for a record store path.

        The realtime database exposes every node as ``<base>/<path>.json``.

        Args:
            path (str): Slash separated node path (e.g. "realtime/firestore")

        Returns:
            str: Fully qualified URL for the node

        Raises:
            ConfigError: If record_store_url is not configured

        Example:
            >>> settings.get_record_store_url("firestore")
            'https://example-rtdb.firebaseio.com/firestore.json'
        """
        if not self.record_store_url:
            raise ConfigError(
                "Record store URL not configured",
                details={"required": ["RECORD_STORE_URL"]}
            )

        base = self.record_store_url.rstrip("/")
        node = path.strip("/")
        return f"{base}/{node}.json"


# Singleton instance shared across the app
settings = Settings()
