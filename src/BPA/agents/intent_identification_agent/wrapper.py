"""
High-level wrapper for the command generation stage.

Turns a free-text question into the command list the engine executes,
using the Bedrock model when available and the rule-based classifier
otherwise.
"""

from datetime import date
from typing import Any, Callable, Dict, Optional

from ...core.exceptions import AgentError, ValidationError
from ...core.logging_config import get_logger
from ...core.settings import settings
from ..llm import BedrockTextGenerator, TextGenerator
from .prompt import build_generation_prompt
from .tools import classify_query, parse_generation_response

logger = get_logger(__name__)


class IntentIdentificationAgent:
    """
    Stage 1 of the pipeline: intent and command generation.

    Attributes:
        prefix (str): Command namespace
        collection (str): Benefits collection used in generated queries
        _generator (Optional[TextGenerator]): Model backend; None means rules only
        _today (Callable[[], date]): Reference date provider

    Thread Safety:
        Safe to share; no per-request state is kept.
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        today: Callable[[], date] = date.today,
        prefix: Optional[str] = None,
        collection: Optional[str] = None,
        use_llm: Optional[bool] = None
    ):
        """
        Initialize the stage.

        Args:
            generator: Text generator (default: Bedrock when LLM use is enabled)
            today: Reference date provider
            prefix: Command namespace (default: from settings)
            collection: Benefits collection (default: from settings)
            use_llm: Override ``settings.llm_enabled``
        """
        if use_llm is None:
            use_llm = generator is not None or settings.llm_enabled
        if generator is None and use_llm:
            generator = BedrockTextGenerator()

        self._generator = generator if use_llm else None
        self._today = today
        self.prefix = prefix or settings.command_prefix
        self.collection = collection or settings.benefits_collection
        logger.info(
            "IntentIdentificationAgent created",
            extra={"llm": self._generator is not None}
        )

    async def identify(self, query: str) -> Dict[str, Any]:
        """
        Produce the commands answering ``query``.

        Args:
            query: User question (required)

        Returns:
            Dictionary containing:
                - success: bool
                - intent: str (Spanish intent label)
                - temporal_context: str
                - commands: List[str] (may be empty when the model found nothing)
                - source: "llm" or "simulation"
                - confidence / pattern_matches: present for rule-based results
                - query: str

        Raises:
            ValidationError: If query is empty

        Example:
            >>> agent = IntentIdentificationAgent(use_llm=False)
            >>> result = await agent.identify("¿Cuánto gastamos en diciembre?")
            >>> result["commands"]
            ['fb:analytics:investment:month=diciembre']
        """
        if not query or not query.strip():
            logger.error("Intent identification attempted without query")
            raise ValidationError("query is required and cannot be empty")

        query = query.strip()
        today = self._today()

        logger.info("=" * 60)
        logger.info("EXECUTING INTENT IDENTIFICATION")
        logger.info("=" * 60)

        if self._generator is not None:
            try:
                system_prompt = build_generation_prompt(today, self.prefix, self.collection)
                response = await self._generator.generate(system_prompt, f'Consulta: "{query}"')
                parsed = parse_generation_response(response)

                if parsed is not None:
                    logger.info(
                        "Intent identified by model",
                        extra={"intent": parsed["intent"], "commands": parsed["commands"]}
                    )
                    return {
                        "success": True,
                        **parsed,
                        "source": "llm",
                        "query": query
                    }

                logger.warning("Model response unusable, using rule-based classifier")

            except AgentError as e:
                logger.warning(
                    f"Model unavailable, using rule-based classifier: {e.message}",
                    extra=e.details
                )
            except Exception as e:
                logger.error(
                    f"Unexpected model failure, using rule-based classifier: {str(e)}",
                    exc_info=True
                )

        result = classify_query(query, today, self.prefix, self.collection)

        logger.info(
            "Intent identification completed",
            extra={"intent": result["intent_code"], "confidence": result["confidence"]}
        )
        logger.info("=" * 60)

        return {
            "success": True,
            **result,
            "source": "simulation",
            "query": query
        }
