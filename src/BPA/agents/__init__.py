"""
Agents package for the benefits assistant.

This package provides the answer pipeline: a Bedrock-backed (Strands)
command generation stage, the command engine, and a Bedrock-backed
interpretation stage, each with a rule-based fallback.

Exports:
    OrchestrationAgent: Full three-stage pipeline
    IntentIdentificationAgent: Stage 1, question -> commands
    InterpretationAgent: Stage 3, results -> answer
    BedrockTextGenerator: Strands/Bedrock text generation backend
    TextGenerator: Text generation interface for custom backends

Example:
    from BPA.agents import OrchestrationAgent

    agent = OrchestrationAgent()
    result = await agent.process_query("¿Cuántos beneficios pendientes hay este mes?")

    if result.get("success"):
        print(result["response"])
"""

from .intent_identification_agent import IntentIdentificationAgent
from .interpretation_agent import InterpretationAgent
from .llm import BedrockTextGenerator, TextGenerator
from .orchestration_agent import OrchestrationAgent

__all__ = [
    "OrchestrationAgent",
    "IntentIdentificationAgent",
    "InterpretationAgent",
    "BedrockTextGenerator",
    "TextGenerator",
]
