"""
Intent Identification Agent for the benefits assistant.

Stage 1 of the pipeline: analyzes the user's question and generates the
engine commands that answer it.

Supported kinds:
- investment: Spending and refunds for a month
- benefit-status: Pending, used and unselected benefits
- redemption-rate / historical-rate: Redemption percentages
- month-progress: Elapsed share of the current month
- compare-december: December against the other months
- top-categories: Most chosen benefit categories
- active-users: Users with benefits in a month
- query: Record search by category and/or month

Uses AWS Bedrock through Strands when enabled, and a keyword classifier
otherwise.
"""

from .wrapper import IntentIdentificationAgent

__all__ = ["IntentIdentificationAgent"]
