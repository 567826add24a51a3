"""
High-level wrapper for the Orchestration Agent.

Runs the three-stage answer pipeline for one user question:

    1. Intent identification: question -> engine commands
    2. Command execution: commands -> CommandResults (snapshot cache + executor)
    3. Interpretation: results -> final Spanish answer

Stages run strictly in sequence. Each model-backed stage degrades to its
rule-based fallback on its own, so a missing or failing model never stops
the pipeline.

Usage:
    agent = OrchestrationAgent()
    result = await agent.process_query("¿Cuánto gastamos en diciembre?")
    print(result["response"])
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from ...core.exceptions import ConfigError, ValidationError
from ...core.settings import settings
from ...core.logging_config import get_logger, setup_root_logger
from ...engine.batch_runner import CommandBatchRunner
from ...engine.query_executor import QueryExecutor
from ...services.cache.snapshot_cache import SnapshotCache
from ...services.record_store.client import RecordStore, RecordStoreClient
from ..intent_identification_agent import IntentIdentificationAgent
from ..interpretation_agent import InterpretationAgent

NO_COMMANDS_MESSAGE = (
    "Lo siento, no pude entender completamente tu consulta. "
    "¿Podrías reformularla o ser más específico?"
)
ALL_COMMANDS_FAILED_MESSAGE = (
    "Lo siento, tuve problemas al obtener la información solicitada. "
    "Por favor, intenta nuevamente en unos momentos."
)
PIPELINE_ERROR_MESSAGE = (
    "Lo siento, ocurrió un error al procesar tu consulta. "
    "Por favor, intenta nuevamente."
)

# History key for callers that do not pass a userId in the context
DEFAULT_SESSION = "default"


def _elapsed_ms(start: datetime) -> float:
    return round((datetime.now() - start).total_seconds() * 1000, 2)


def _session_id(context: Optional[Dict[str, Any]]) -> str:
    user_id = (context or {}).get("userId")
    return str(user_id) if user_id else DEFAULT_SESSION


class OrchestrationAgent:
    """
    Pipeline orchestrator for the benefits assistant.

    Collaborators are injectable; any that are omitted are built from
    settings on first use (record store client, snapshot cache, executor,
    batch runner and both model-backed stages).

    Attributes:
        _store (Optional[RecordStore]): Record store shared by cache and executor
        _cache (Optional[SnapshotCache]): Process-wide snapshot cache
        _runner (Optional[CommandBatchRunner]): Stage 2 executor
        _intent_agent (Optional[IntentIdentificationAgent]): Stage 1
        _interpretation_agent (Optional[InterpretationAgent]): Stage 3
        _conversation_history (Dict[str, List[Dict[str, Any]]]): Per-user
            exchanges, kept when requested and capped at history_max_entries

    Thread Safety:
        Safe to share across tasks; concurrent queries share the snapshot cache.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        cache: Optional[SnapshotCache] = None,
        runner: Optional[CommandBatchRunner] = None,
        intent_agent: Optional[IntentIdentificationAgent] = None,
        interpretation_agent: Optional[InterpretationAgent] = None,
        logger: Optional[logging.Logger] = None,
        today: Callable[[], date] = date.today,
        history_max_entries: Optional[int] = None
    ):
        self._store = store
        self._cache = cache
        self._runner = runner
        self._intent_agent = intent_agent
        self._interpretation_agent = interpretation_agent
        self._logger = logger or get_logger(__name__)
        self._today = today
        self._initialized = False
        self._conversation_history: Dict[str, List[Dict[str, Any]]] = {}
        self._history_max_entries = history_max_entries or settings.history_max_entries

        self._request_count = 0
        self._total_stage_ms = {"stage1": 0.0, "stage2": 0.0, "stage3": 0.0}
        self._total_request_ms = 0.0

        self._logger.info("OrchestrationAgent wrapper created")

    def _ensure_initialized(self) -> None:
        """
        Build the collaborators that were not injected.

        Raises:
            ConfigError: If the record store is not configured
        """
        if self._initialized:
            return

        setup_root_logger()

        if self._runner is None:
            if self._store is None:
                self._store = RecordStoreClient()
            if self._cache is None:
                self._cache = SnapshotCache(self._store, logger=self._logger)
            executor = QueryExecutor(self._store, logger=self._logger)
            self._runner = CommandBatchRunner(
                executor, self._cache, today=self._today, logger=self._logger
            )

        if self._intent_agent is None:
            self._intent_agent = IntentIdentificationAgent(today=self._today)
        if self._interpretation_agent is None:
            self._interpretation_agent = InterpretationAgent()

        self._initialized = True
        self._logger.info("Orchestration pipeline initialized")

    def _result(self, query: str, success: bool, response: str, **fields: Any) -> Dict[str, Any]:
        result = {
            "success": success,
            "response": response,
            "intent": None,
            "temporal_context": None,
            "commands": [],
            "results": [],
            "timings": {},
            "stage_sources": {},
            "query": query,
        }
        result.update(fields)
        return result

    def _record_timings(self, timings: Dict[str, float]) -> None:
        for stage in self._total_stage_ms:
            self._total_stage_ms[stage] += timings.get(f"{stage}_ms", 0.0)
        self._total_request_ms += timings.get("total_ms", 0.0)

    async def process_query(
        self,
        query: str,
        context: Optional[Dict[str, Any]] = None,
        preserve_history: bool = False
    ) -> Dict[str, Any]:
        """
        Answer a user question through the three-stage pipeline.

        Args:
            query: User's question (required)
            context: Values for ``{placeholder}`` command path segments;
                ``userId`` also selects whose history the exchange joins
            preserve_history: Whether to keep this exchange in the history

        Returns:
            Dictionary containing:
            - success: bool (False for every termination message)
            - response: str (final answer or termination message)
            - intent / temporal_context: from stage 1
            - commands: List[str] generated in stage 1
            - results: List[Dict] command results from stage 2
            - timings: stage1_ms, stage2_ms, stage3_ms, total_ms
            - stage_sources: "llm" or "simulation" per model-backed stage
            - query: str (original query)
            - error: str (only when success is False)

        Raises:
            ValidationError: If query is empty or invalid

        Example:
            >>> agent = OrchestrationAgent(store=InMemoryRecordStore(tree))
            >>> result = await agent.process_query("¿Cuánto gastamos en diciembre?")
            >>> result["commands"]
            ['fb:analytics:investment:month=diciembre']
        """
        if not query or not query.strip():
            self._logger.error("Orchestration attempted without query")
            raise ValidationError(
                "query is required and cannot be empty",
                details={"operation": "orchestration"}
            )

        query = query.strip()
        self._request_count += 1
        started = datetime.now()
        timings: Dict[str, float] = {}
        stage_sources: Dict[str, str] = {}

        self._logger.info(
            "Processing query through orchestration",
            extra={"query": query[:100], "request_number": self._request_count}
        )

        try:
            self._ensure_initialized()

            self._logger.info("=" * 70)
            self._logger.info("STAGE 1: INTENT IDENTIFICATION")
            self._logger.info("=" * 70)

            stage_start = datetime.now()
            identified = await self._intent_agent.identify(query)
            timings["stage1_ms"] = _elapsed_ms(stage_start)
            stage_sources["intent"] = identified.get("source", "simulation")

            intent = identified.get("intent")
            temporal_context = identified.get("temporal_context")
            commands = list(identified.get("commands") or [])

            self._logger.info(
                f"Stage 1 completed in {timings['stage1_ms']}ms",
                extra={"intent": intent, "commands": commands}
            )

            if not commands:
                self._logger.warning("No commands generated, returning clarification message")
                timings["total_ms"] = _elapsed_ms(started)
                self._record_timings(timings)
                return self._result(
                    query, False, NO_COMMANDS_MESSAGE,
                    intent=intent, temporal_context=temporal_context,
                    timings=timings, stage_sources=stage_sources,
                    error="No commands generated"
                )

            self._logger.info("=" * 70)
            self._logger.info(f"STAGE 2: EXECUTING {len(commands)} COMMANDS")
            self._logger.info("=" * 70)

            stage_start = datetime.now()
            results = await self._runner.run(commands, context)
            timings["stage2_ms"] = _elapsed_ms(stage_start)
            result_dicts = [r.to_dict() for r in results]

            self._logger.info(
                f"Stage 2 completed in {timings['stage2_ms']}ms",
                extra={"results": len(results), "failed": sum(1 for r in results if not r.ok)}
            )

            if all(not r.ok for r in results):
                self._logger.error("All commands failed")
                timings["total_ms"] = _elapsed_ms(started)
                self._record_timings(timings)
                return self._result(
                    query, False, ALL_COMMANDS_FAILED_MESSAGE,
                    intent=intent, temporal_context=temporal_context,
                    commands=commands, results=result_dicts,
                    timings=timings, stage_sources=stage_sources,
                    error="All commands failed"
                )

            self._logger.info("=" * 70)
            self._logger.info("STAGE 3: INTERPRETATION")
            self._logger.info("=" * 70)

            stage_start = datetime.now()
            interpreted = await self._interpretation_agent.interpret(
                query, intent or "", temporal_context or "", results
            )
            timings["stage3_ms"] = _elapsed_ms(stage_start)
            stage_sources["interpretation"] = interpreted.get("source", "simulation")

            timings["total_ms"] = _elapsed_ms(started)
            self._record_timings(timings)

            result = self._result(
                query, True, interpreted["response"],
                intent=intent, temporal_context=temporal_context,
                commands=commands, results=result_dicts,
                timings=timings, stage_sources=stage_sources
            )

            if preserve_history:
                self._remember(_session_id(context), {
                    "query": query,
                    "intent": intent,
                    "commands": commands,
                    "response": result["response"],
                    "timestamp": datetime.now().isoformat()
                })

            self._logger.info(
                f"Pipeline completed in {timings['total_ms']}ms",
                extra={"timings": timings, "stage_sources": stage_sources}
            )
            self._logger.info("=" * 70)

            return result

        except ConfigError as e:
            self._logger.error(f"Pipeline unavailable: {e.message}", extra=e.details)
            timings["total_ms"] = _elapsed_ms(started)
            self._record_timings(timings)
            return self._result(
                query, False, PIPELINE_ERROR_MESSAGE,
                timings=timings, stage_sources=stage_sources,
                error=f"Orchestration service unavailable: {e.message}"
            )

        except Exception as e:
            self._logger.error(
                f"Orchestration failed: {str(e)}",
                exc_info=True,
                extra={"error_type": type(e).__name__, "query": query}
            )
            timings["total_ms"] = _elapsed_ms(started)
            self._record_timings(timings)
            return self._result(
                query, False, PIPELINE_ERROR_MESSAGE,
                timings=timings, stage_sources=stage_sources,
                error=f"Orchestration failed: {str(e)}"
            )

    async def answer(self, query: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Answer text only; never raises."""
        try:
            result = await self.process_query(query, context)
        except ValidationError as e:
            self._logger.warning(f"Rejected query: {e.message}")
            return NO_COMMANDS_MESSAGE
        return result["response"]

    async def process_batch(
        self,
        queries: List[str],
        context: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Process multiple queries sequentially.

        Args:
            queries: List of query strings to process
            context: Optional shared placeholder context

        Returns:
            List of pipeline results, one per query
        """
        if not queries:
            self._logger.warning("Batch processing called with empty query list")
            return []

        self._logger.info(f"Batch orchestration requested for {len(queries)} queries")

        results = []
        for idx, query in enumerate(queries, 1):
            self._logger.info(f"Processing query {idx}/{len(queries)}")
            try:
                result = await self.process_query(query, context)
            except ValidationError as e:
                result = self._result(query, False, NO_COMMANDS_MESSAGE, error=e.message)
            results.append(result)

        self._logger.info(
            f"Batch orchestration completed: {len(results)} results",
            extra={
                "successful": sum(1 for r in results if r.get("success")),
                "failed": sum(1 for r in results if not r.get("success"))
            }
        )

        return results

    def get_performance_stats(self) -> Dict[str, Any]:
        """
        Average stage timings and the share of time spent in each stage.

        Returns:
            dict with totalRequests, average*Time (ms), modelSplit (percent)
            and the batch runner and cache statistics
        """
        count = self._request_count
        total = self._total_request_ms

        def _average(value: float) -> float:
            return round(value / count, 2) if count else 0

        def _split(value: float) -> float:
            return round(value / total * 100, 2) if total else 0

        return {
            "totalRequests": count,
            "averageIntentTime": _average(self._total_stage_ms["stage1"]),
            "averageCommandTime": _average(self._total_stage_ms["stage2"]),
            "averageInterpretationTime": _average(self._total_stage_ms["stage3"]),
            "averageTotalTime": _average(total),
            "modelSplit": {
                "intentPercentage": _split(self._total_stage_ms["stage1"]),
                "commandPercentage": _split(self._total_stage_ms["stage2"]),
                "interpretationPercentage": _split(self._total_stage_ms["stage3"]),
            },
            "runnerStats": self._runner.get_stats() if self._runner else {},
            "cacheStats": self._cache.stats() if self._cache else {},
        }

    def invalidate_cache(self) -> None:
        """Drop the shared snapshot; the next analytics command fetches again."""
        if self._cache is None:
            self._logger.warning("No snapshot cache to invalidate")
            return
        self._cache.invalidate()

    def _remember(self, session_id: str, exchange: Dict[str, Any]) -> None:
        history = self._conversation_history.setdefault(session_id, [])
        history.append(exchange)
        # oldest exchanges drop out first
        del history[:-self._history_max_entries]

    def get_conversation_history(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Exchanges recorded with ``preserve_history=True`` for one user.

        Args:
            user_id: ``userId`` the queries were sent with (default session if None)

        Returns:
            Oldest-first list of exchanges (a copy)
        """
        return list(self._conversation_history.get(user_id or DEFAULT_SESSION, []))

    def clear_conversation_history(self, user_id: Optional[str] = None) -> None:
        """Forget one user's exchanges, or every user's when ``user_id`` is None."""
        if user_id is None:
            self._conversation_history.clear()
            self._logger.info("Conversation history cleared")
            return

        self._conversation_history.pop(user_id, None)
        self._logger.info(f"Conversation history cleared for {user_id}")

    def get_history_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-user exchange count and last activity timestamp."""
        return {
            session_id: {
                "messageCount": len(history),
                "lastActivity": history[-1]["timestamp"] if history else None
            }
            for session_id, history in self._conversation_history.items()
        }
