"""
Interpretation Agent for the benefits assistant.

Stage 3 of the pipeline: condenses command results into summaries, trends
and key metrics, and narrates them as the final Spanish answer.
"""

from .wrapper import InterpretationAgent

__all__ = ["InterpretationAgent"]
