"""
Command-driven query and analytics engine.

Modules:
    query_executor: get/query/count over store nodes with root probing
    analytics: Calculators over the benefit snapshot
    batch_runner: Sequential execution of command batches
    result_formatter: Spanish plain-text rendering of results
"""

from .batch_runner import CommandBatchRunner
from .query_executor import QueryExecutor
from .result_formatter import format_results

__all__ = ["CommandBatchRunner", "QueryExecutor", "format_results"]
