"""
Tests for settings, the exception hierarchy, logging setup and package imports.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest

from BPA.core.exceptions import (
    AgentError,
    AnalyticsError,
    BPAError,
    CommandParseError,
    ConfigError,
    RecordStoreError,
    UnsupportedOperationError,
    ValidationError,
)
from BPA.core.logging_config import LoggerConfig, get_logger
from BPA.core.settings import Settings, settings

SRC_DIR = Path(__file__).resolve().parents[2] / "src"


class TestSettings:

    def test_engine_defaults(self):
        fresh = Settings(_env_file=None)

        assert fresh.command_prefix == "fb"
        assert fresh.snapshot_ttl_seconds == 300
        assert fresh.benefits_root_paths == ["firestore", "realtime/firestore"]
        assert fresh.query_fallback_root == "firestore"
        assert fresh.history_max_entries == 20

    def test_interpretation_model_defaults_to_command_model(self, monkeypatch):
        monkeypatch.setattr(settings, "bedrock_interpretation_model_id", None)
        assert settings.interpretation_model_id == settings.bedrock_model_id

    def test_record_store_url(self, monkeypatch):
        monkeypatch.setattr(settings, "record_store_url", "https://db.example.com/")
        assert settings.get_record_store_url("/realtime/firestore") == (
            "https://db.example.com/realtime/firestore.json"
        )

    def test_record_store_url_missing(self, monkeypatch):
        monkeypatch.setattr(settings, "record_store_url", None)

        with pytest.raises(ConfigError):
            settings.get_record_store_url("firestore")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("COMMAND_PREFIX", "firebase")
        monkeypatch.setenv("LLM_ENABLED", "false")

        fresh = Settings(_env_file=None)

        assert fresh.command_prefix == "firebase"
        assert fresh.llm_enabled is False


class TestExceptions:

    @pytest.mark.parametrize("cls", [
        ConfigError, ValidationError, CommandParseError, RecordStoreError,
        AgentError, AnalyticsError, UnsupportedOperationError,
    ])
    def test_hierarchy(self, cls):
        error = cls("fallo", details={"path": "firestore"})

        assert isinstance(error, BPAError)
        assert error.message == "fallo"
        assert error.details == {"path": "firestore"}
        assert str(error) == "fallo"

    def test_details_default_to_empty_dict(self):
        assert BPAError("fallo").details == {}


class TestLogging:

    def test_get_logger_is_idempotent(self):
        first = get_logger("BPA.tests.logging")
        handler_count = len(first.handlers)
        second = get_logger("BPA.tests.logging")

        assert second is first
        assert len(second.handlers) == handler_count

    def test_file_handler_skipped_in_lambda(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AWS_LAMBDA_FUNCTION_NAME", "bpa")
        config = LoggerConfig(log_dir=tmp_path)

        assert config._create_file_handler() is None

    def test_level_names(self, tmp_path):
        assert LoggerConfig(log_level="debug", log_dir=tmp_path).log_level == logging.DEBUG
        assert LoggerConfig(log_level="nonsense", log_dir=tmp_path).log_level == logging.INFO


class TestPackageImports:
    """Each package must import on its own in a fresh interpreter."""

    @pytest.mark.parametrize("module", [
        "BPA.models",
        "BPA.models.benefit_record",
        "BPA.services.cache",
        "BPA.engine",
        "BPA.agents",
    ])
    def test_import_in_fresh_interpreter(self, module):
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))

        completed = subprocess.run(
            [sys.executable, "-c", f"import {module}"],
            capture_output=True,
            text=True,
            env=env,
            timeout=60,
        )

        assert completed.returncode == 0, completed.stderr
