"""
Command batch runner.

Executes the commands produced by the intent stage, one after another, and
returns one CommandResult per accepted command, in input order. Failures
never escape: parse errors, store errors and unsupported operations are
captured as the failing command's ``error``.

Module Input:
    - Command strings ("fb:query:userBenefits:Estado=Pendiente", ...)
    - Optional placeholder context ({"userId": "..."})

Module Output:
    - List[CommandResult]
    - Per-command timings (``last_timings``) and cumulative stats (``get_stats``)
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..core.exceptions import BPAError
from ..core.logging_config import get_logger
from ..core.settings import settings
from ..models.commands import Command, CommandResult, parse_command
from ..services.cache.snapshot_cache import SnapshotCache
from .analytics import KNOWN_KINDS, SNAPSHOT_FREE_KINDS, run_calculator, use_cache_param
from .query_executor import QueryExecutor


class CommandBatchRunner:
    """
    Sequential executor for command batches.

    Read commands go to the QueryExecutor; analytics commands read the
    shared snapshot from the SnapshotCache and run the matching calculator.

    Attributes:
        prefix (str): Namespace every accepted command starts with
        last_timings (List[Dict[str, Any]]): Timings of the latest batch
        _executor (QueryExecutor): get/query/count handler
        _cache (SnapshotCache): Snapshot source for analytics
        _today (Callable[[], date]): Reference date provider

    Example:
        >>> runner = CommandBatchRunner(executor, cache)
        >>> results = await runner.run(["fb:analytics:month-progress"])
        >>> results[0].result["progress"]
        50
    """

    def __init__(
        self,
        executor: QueryExecutor,
        cache: SnapshotCache,
        prefix: Optional[str] = None,
        today: Callable[[], date] = date.today,
        logger: Optional[logging.Logger] = None
    ):
        self._executor = executor
        self._cache = cache
        self.prefix = prefix or settings.command_prefix
        self._today = today
        self._logger = logger or get_logger(__name__)

        self.last_timings: List[Dict[str, Any]] = []
        self._operation_count = 0
        self._queries_executed = 0
        self._total_query_ms = 0.0
        self._last_operation_ms = 0.0

    def _accepts(self, text: Any) -> bool:
        return isinstance(text, str) and text.strip().startswith(f"{self.prefix}:")

    async def run(
        self,
        commands: Sequence[str],
        context: Optional[Mapping[str, Any]] = None
    ) -> List[CommandResult]:
        """
        Execute a batch of commands sequentially.

        Strings outside the command namespace are skipped without a result.

        Args:
            commands: Command strings in execution order
            context: Values for ``{placeholder}`` path segments

        Returns:
            One CommandResult per accepted command, in order
        """
        batch_start = datetime.now()
        accepted = [c.strip() for c in commands if self._accepts(c)]
        skipped = len(commands) - len(accepted)

        self._logger.info(f"Running batch of {len(accepted)} commands")
        if skipped:
            self._logger.warning(f"Skipped {skipped} strings without the '{self.prefix}:' prefix")

        results: List[CommandResult] = []
        self.last_timings = []

        for text in accepted:
            start = datetime.now()
            result = await self.run_command(text, context)
            elapsed_ms = (datetime.now() - start).total_seconds() * 1000

            self._record(elapsed_ms)
            self.last_timings.append({
                "command": text,
                "duration_ms": round(elapsed_ms, 2),
                "success": result.ok,
            })
            results.append(result)

        batch_ms = (datetime.now() - batch_start).total_seconds() * 1000
        self._last_operation_ms = batch_ms
        self._operation_count += 1

        failed = sum(1 for r in results if not r.ok)
        self._logger.info(
            f"Batch completed in {batch_ms:.2f}ms ({failed} failed)",
            extra={"commands": len(results), "failed": failed}
        )
        return results

    async def run_command(
        self,
        text: str,
        context: Optional[Mapping[str, Any]] = None
    ) -> CommandResult:
        """Execute one command string; never raises."""
        try:
            command = parse_command(text, prefix=self.prefix, context=context)
            self._logger.debug(f"Executing: {command}")

            if command.is_analytics:
                payload = await self._run_analytics(command)
            else:
                payload = await self._executor.execute(command)

            return CommandResult.success(text, payload)

        except BPAError as e:
            self._logger.warning(f"Command failed: {text} - {e.message}", extra=e.details)
            return CommandResult.failure(text, e.message)

        except Exception as e:
            self._logger.error(f"Unexpected error executing {text}: {str(e)}", exc_info=True)
            return CommandResult.failure(text, str(e))

    async def _run_analytics(self, command: Command) -> Dict[str, Any]:
        kind = command.analytics_kind
        params = command.params()
        today = self._today()

        if kind not in KNOWN_KINDS or kind in SNAPSHOT_FREE_KINDS:
            return run_calculator(kind, (), params, today)

        snapshot = await self._cache.get(use_cache=use_cache_param(params))
        self._logger.debug(
            f"Running {kind} over {len(snapshot.records)} records",
            extra={"params": params}
        )
        return run_calculator(kind, snapshot.records, params, today)

    def _record(self, elapsed_ms: float) -> None:
        self._queries_executed += 1
        self._total_query_ms += elapsed_ms

    def get_stats(self) -> Dict[str, Any]:
        """
        Cumulative execution statistics.

        Returns:
            dict with operationCount (batches), queriesExecuted (commands),
            averageQueryTime and lastOperationTime in milliseconds
        """
        average = self._total_query_ms / self._queries_executed if self._queries_executed else 0
        return {
            "operationCount": self._operation_count,
            "queriesExecuted": self._queries_executed,
            "averageQueryTime": round(average, 2),
            "lastOperationTime": round(self._last_operation_ms, 2),
        }
