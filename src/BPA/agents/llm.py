"""
Bedrock text generation for the pipeline stages.

Both model-backed stages (command generation and narration) only need
"system prompt + prompt in, text out". ``TextGenerator`` is that interface;
``BedrockTextGenerator`` implements it with a Strands agent over AWS Bedrock.

A fresh Strands ``Agent`` is built per call so no conversation state leaks
between requests. The Bedrock model and its boto3 session are created lazily
on first use, keeping imports cheap and letting the pipeline run with the
rule-based fallbacks when AWS is not configured.
"""

import asyncio
import os
from typing import Any, Dict, Optional, Protocol

import boto3

from ..core.exceptions import AgentError, ConfigError
from ..core.logging_config import get_logger
from ..core.settings import settings

logger = get_logger(__name__)


class TextGenerator(Protocol):
    """Minimal text generation interface used by the pipeline stages."""

    async def generate(self, system_prompt: str, prompt: str) -> str:
        ...


def _setup_aws_credentials() -> Dict[str, str]:
    """
    Configure AWS credentials for Bedrock access.

    Returns:
        Keyword arguments for ``boto3.Session``

    Raises:
        ConfigError: If credentials are missing
    """
    # Check if running in Lambda
    is_lambda = 'AWS_EXECUTION_ENV' in os.environ or 'AWS_LAMBDA_FUNCTION_NAME' in os.environ

    if is_lambda:
        logger.info("Running in Lambda - using execution role")
        return {'region_name': settings.aws_default_region}

    if settings.aws_profile:
        logger.info(f"Using AWS profile: {settings.aws_profile}")
        return {
            'region_name': settings.aws_default_region,
            'profile_name': settings.aws_profile
        }

    logger.info("Using explicit AWS credentials from settings")

    if not settings.aws_access_key_id or not settings.aws_secret_access_key:
        raise ConfigError(
            "AWS credentials not configured",
            details={"required": ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]}
        )

    logger.info(f"AWS region configured: {settings.aws_default_region}")

    return {
        'region_name': settings.aws_default_region,
        'aws_access_key_id': settings.aws_access_key_id,
        'aws_secret_access_key': settings.aws_secret_access_key
    }


class BedrockTextGenerator:
    """
    TextGenerator backed by a Strands agent on AWS Bedrock.

    Attributes:
        model_id (str): Bedrock model identifier
        timeout (float): Upper bound for one generation, in seconds
        _model: Lazily created ``strands.models.BedrockModel``

    Example:
        >>> generator = BedrockTextGenerator()
        >>> text = await generator.generate("Eres un asistente.", "Hola")
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None
    ):
        self.model_id = model_id or settings.bedrock_model_id
        self.timeout = timeout or settings.llm_timeout_sec
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self._model: Any = None
        logger.info(f"BedrockTextGenerator created (model: {self.model_id})")

    def _ensure_initialized(self) -> None:
        """
        Lazy initialization of the Bedrock model.

        Raises:
            ConfigError: If AWS credentials are missing or the model cannot be built
        """
        if self._model is not None:
            return

        try:
            from strands.models import BedrockModel

            session = boto3.Session(**_setup_aws_credentials())
            self._model = BedrockModel(
                model_id=self.model_id,
                boto_session=session,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            logger.info(f"Bedrock model initialized: {self.model_id}")

        except ConfigError:
            raise

        except Exception as e:
            logger.error(f"Failed to initialize Bedrock model: {str(e)}")
            raise ConfigError(
                "Bedrock model initialization failed",
                details={"error": str(e), "model": self.model_id}
            )

    async def generate(self, system_prompt: str, prompt: str) -> str:
        """
        Generate text for ``prompt`` under ``system_prompt``.

        Returns:
            Model output text, stripped

        Raises:
            AgentError: On configuration errors, timeouts, Bedrock failures or
                an empty response
        """
        try:
            self._ensure_initialized()

            from strands import Agent

            agent = Agent(
                model=self._model,
                system_prompt=system_prompt,
                callback_handler=None,
            )
            result = await asyncio.wait_for(agent.invoke_async(prompt), timeout=self.timeout)

        except ConfigError as e:
            logger.error(f"Text generation unavailable: {e.message}", extra=e.details)
            raise AgentError(f"Text generation unavailable: {e.message}", details=e.details)

        except asyncio.TimeoutError:
            logger.error(f"Text generation timed out after {self.timeout}s")
            raise AgentError(
                "Text generation timed out",
                details={"timeout_sec": self.timeout, "model": self.model_id}
            )

        except Exception as e:
            logger.error(
                f"Text generation failed: {str(e)}",
                extra={"error_type": type(e).__name__, "model": self.model_id}
            )
            raise AgentError(
                f"Text generation failed: {str(e)}",
                details={"error_type": type(e).__name__, "model": self.model_id}
            )

        text = str(result).strip()
        if not text:
            raise AgentError("Empty model response", details={"model": self.model_id})
        return text
