"""
Tests for the Bedrock text generator and AWS credential resolution.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from BPA.agents.llm import BedrockTextGenerator, _setup_aws_credentials
from BPA.core.exceptions import AgentError, ConfigError
from BPA.core.settings import settings


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def no_aws(monkeypatch):
    """Environment with no Lambda markers, profile or keys."""
    monkeypatch.delenv("AWS_EXECUTION_ENV", raising=False)
    monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)
    monkeypatch.setattr(settings, "aws_profile", None)
    monkeypatch.setattr(settings, "aws_access_key_id", None)
    monkeypatch.setattr(settings, "aws_secret_access_key", None)


@pytest.fixture
def strands_agent(monkeypatch):
    """Replace strands.Agent; returns the fake agent instance."""
    fake_agent = MagicMock()
    fake_agent.invoke_async = AsyncMock(return_value="  Respuesta generada  ")
    agent_cls = MagicMock(return_value=fake_agent)
    monkeypatch.setattr("strands.Agent", agent_cls)
    fake_agent.factory = agent_cls
    return fake_agent


@pytest.fixture
def generator():
    generator = BedrockTextGenerator(model_id="test-model", timeout=0.5, max_tokens=256, temperature=0)
    generator._model = MagicMock()
    return generator


# =============================================================================
# Credentials
# =============================================================================

class TestSetupAwsCredentials:

    def test_lambda_uses_execution_role(self, no_aws, monkeypatch):
        monkeypatch.setenv("AWS_LAMBDA_FUNCTION_NAME", "bpa-assistant")
        assert _setup_aws_credentials() == {"region_name": settings.aws_default_region}

    def test_profile(self, no_aws, monkeypatch):
        monkeypatch.setattr(settings, "aws_profile", "beneficios")

        credentials = _setup_aws_credentials()

        assert credentials["profile_name"] == "beneficios"

    def test_explicit_keys(self, no_aws, monkeypatch):
        monkeypatch.setattr(settings, "aws_access_key_id", "AKIA_TEST")
        monkeypatch.setattr(settings, "aws_secret_access_key", "secret")

        credentials = _setup_aws_credentials()

        assert credentials["aws_access_key_id"] == "AKIA_TEST"
        assert credentials["aws_secret_access_key"] == "secret"

    def test_missing_credentials(self, no_aws):
        with pytest.raises(ConfigError):
            _setup_aws_credentials()


# =============================================================================
# BedrockTextGenerator
# =============================================================================

class TestBedrockTextGenerator:
    """Tests for generation through a (mocked) Strands agent."""

    def test_settings_defaults(self):
        generator = BedrockTextGenerator()

        assert generator.model_id == settings.bedrock_model_id
        assert generator.timeout == settings.llm_timeout_sec

    @pytest.mark.asyncio
    async def test_generate_returns_stripped_text(self, generator, strands_agent):
        text = await generator.generate("Eres un asistente.", "Hola")

        assert text == "Respuesta generada"
        strands_agent.factory.assert_called_once_with(
            model=generator._model, system_prompt="Eres un asistente.", callback_handler=None
        )
        strands_agent.invoke_async.assert_awaited_once_with("Hola")

    @pytest.mark.asyncio
    async def test_timeout(self, generator, strands_agent):
        async def slow(prompt):
            await asyncio.sleep(5)

        strands_agent.invoke_async = slow
        generator.timeout = 0.01

        with pytest.raises(AgentError, match="timed out"):
            await generator.generate("sys", "Hola")

    @pytest.mark.asyncio
    async def test_bedrock_failure(self, generator, strands_agent):
        strands_agent.invoke_async.side_effect = RuntimeError("ThrottlingException")

        with pytest.raises(AgentError) as exc_info:
            await generator.generate("sys", "Hola")

        assert exc_info.value.details["error_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_empty_response(self, generator, strands_agent):
        strands_agent.invoke_async.return_value = "   "

        with pytest.raises(AgentError, match="Empty model response"):
            await generator.generate("sys", "Hola")

    @pytest.mark.asyncio
    async def test_missing_credentials_become_agent_error(self, no_aws):
        generator = BedrockTextGenerator(model_id="test-model")

        with pytest.raises(AgentError, match="unavailable"):
            await generator.generate("sys", "Hola")
