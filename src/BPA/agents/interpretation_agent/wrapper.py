"""
High-level wrapper for the interpretation stage.

Turns command results into the final Spanish answer, narrated by the
Bedrock model when available and by fixed templates otherwise.
"""

from typing import Any, Dict, Optional, Sequence

from ...core.exceptions import AgentError
from ...core.logging_config import get_logger
from ...core.settings import settings
from ..llm import BedrockTextGenerator, TextGenerator
from .prompt import build_interpretation_prompt
from .tools import build_structured_context, render_fallback_narrative

logger = get_logger(__name__)


class InterpretationAgent:
    """
    Stage 3 of the pipeline: narration of results.

    Attributes:
        _generator (Optional[TextGenerator]): Model backend; None means templates only
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        use_llm: Optional[bool] = None
    ):
        if use_llm is None:
            use_llm = generator is not None or settings.llm_enabled
        if generator is None and use_llm:
            generator = BedrockTextGenerator(model_id=settings.interpretation_model_id)

        self._generator = generator if use_llm else None
        logger.info(
            "InterpretationAgent created",
            extra={"llm": self._generator is not None}
        )

    async def interpret(
        self,
        query: str,
        intent: str,
        temporal_context: str,
        results: Sequence[Any]
    ) -> Dict[str, Any]:
        """
        Narrate ``results`` as the answer to ``query``.

        Args:
            query: Original user question
            intent: Intent label from stage 1
            temporal_context: Temporal context from stage 1
            results: CommandResults from stage 2

        Returns:
            Dictionary containing:
                - success: bool
                - response: str (never empty)
                - source: "llm" or "simulation"
                - context: Dict (structured context used for narration)
        """
        logger.info("=" * 60)
        logger.info("EXECUTING INTERPRETATION")
        logger.info("=" * 60)

        context = build_structured_context(results, query)

        if self._generator is not None:
            try:
                system_prompt = build_interpretation_prompt(query, intent, temporal_context, context)
                response = await self._generator.generate(system_prompt, query)

                if response and response.strip():
                    logger.info(
                        "Interpretation completed by model",
                        extra={"response_length": len(response)}
                    )
                    return {
                        "success": True,
                        "response": response.strip(),
                        "source": "llm",
                        "context": context
                    }

                logger.warning("Empty model response, using template narrative")

            except AgentError as e:
                logger.warning(
                    f"Model unavailable, using template narrative: {e.message}",
                    extra=e.details
                )
            except Exception as e:
                logger.error(
                    f"Unexpected model failure, using template narrative: {str(e)}",
                    exc_info=True
                )

        response = render_fallback_narrative(context, results)
        logger.info(
            "Interpretation completed by templates",
            extra={"response_length": len(response)}
        )

        return {
            "success": True,
            "response": response,
            "source": "simulation",
            "context": context
        }
