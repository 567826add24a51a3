"""
Tests for the orchestration pipeline.

Runs the real engine over the in-memory dataset with both model-backed
stages in rule-based mode; stages are replaced by mocks where a test needs
to force a specific outcome.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from BPA.agents.intent_identification_agent import IntentIdentificationAgent
from BPA.agents.interpretation_agent import InterpretationAgent
from BPA.agents.orchestration_agent import (
    ALL_COMMANDS_FAILED_MESSAGE,
    NO_COMMANDS_MESSAGE,
    PIPELINE_ERROR_MESSAGE,
    OrchestrationAgent,
)
from BPA.core.exceptions import ValidationError
from BPA.core.settings import settings
from BPA.engine.batch_runner import CommandBatchRunner
from BPA.engine.query_executor import QueryExecutor
from BPA.services.cache.snapshot_cache import SnapshotCache


# =============================================================================
# Fixtures
# =============================================================================

def _identified(commands, intent="Consulta", source="llm"):
    return {
        "success": True,
        "intent": intent,
        "temporal_context": "Mes actual",
        "commands": commands,
        "source": source,
    }


def _mock_intent_agent(commands):
    agent = MagicMock()
    agent.identify = AsyncMock(return_value=_identified(commands))
    return agent


@pytest.fixture
def cache(store, clock):
    return SnapshotCache(store, ttl_seconds=300, root_paths=["firestore"], clock=clock)


@pytest.fixture
def runner(store, cache, today):
    return CommandBatchRunner(
        QueryExecutor(store, fallback_root="firestore"), cache, prefix="fb", today=lambda: today
    )


@pytest.fixture
def build_agent(cache, runner, today):
    """Factory for pipelines with rule-based stages unless overridden."""

    def _build(intent_agent=None, interpretation_agent=None, **kwargs):
        return OrchestrationAgent(
            cache=cache,
            runner=runner,
            intent_agent=intent_agent or IntentIdentificationAgent(
                today=lambda: today, prefix="fb", collection="userBenefits", use_llm=False
            ),
            interpretation_agent=interpretation_agent or InterpretationAgent(use_llm=False),
            today=lambda: today,
            **kwargs
        )

    return _build


# =============================================================================
# Happy path
# =============================================================================

class TestProcessQuery:
    """End-to-end runs over the in-memory dataset."""

    @pytest.mark.asyncio
    async def test_investment_question(self, build_agent):
        agent = build_agent()

        result = await agent.process_query("¿Cuánto gastamos en diciembre?")

        assert result["success"] is True
        assert result["intent"] == "Conocer gastos o inversión"
        assert result["temporal_context"] == "diciembre"
        assert result["commands"] == ["fb:analytics:investment:month=diciembre"]
        assert result["results"][0]["result"]["totalInvestment"] == 670
        assert "La inversión total en diciembre fue de $670." in result["response"]
        assert result["stage_sources"] == {"intent": "simulation", "interpretation": "simulation"}
        assert set(result["timings"]) == {"stage1_ms", "stage2_ms", "stage3_ms", "total_ms"}
        assert "error" not in result

    @pytest.mark.asyncio
    async def test_partial_failure_still_interprets(self, build_agent):
        interpretation = InterpretationAgent(use_llm=False)
        interpretation.interpret = AsyncMock(wraps=interpretation.interpret)
        agent = build_agent(
            intent_agent=_mock_intent_agent(["fb:set:userBenefits/b1:Estado=x", "fb:analytics:month-progress"]),
            interpretation_agent=interpretation,
        )

        result = await agent.process_query("progreso")

        assert result["success"] is True
        assert "error" in result["results"][0]
        assert result["results"][1]["result"]["progress"] == 50
        interpretation.interpret.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_placeholder_context(self, build_agent):
        agent = build_agent(intent_agent=_mock_intent_agent(["fb:get:userBenefits/{benefitId}"]))

        result = await agent.process_query("detalle", context={"benefitId": "b3"})

        assert result["success"] is True
        assert result["results"][0]["result"]["Nombre"] == "Carla Ruiz"


# =============================================================================
# Termination paths
# =============================================================================

class TestTermination:

    @pytest.mark.asyncio
    async def test_no_commands(self, build_agent, runner):
        interpretation = MagicMock()
        interpretation.interpret = AsyncMock()
        agent = build_agent(intent_agent=_mock_intent_agent([]), interpretation_agent=interpretation)

        result = await agent.process_query("Hola")

        assert result["success"] is False
        assert result["response"] == NO_COMMANDS_MESSAGE
        assert result["error"] == "No commands generated"
        assert runner.get_stats()["queriesExecuted"] == 0
        interpretation.interpret.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_commands_failed(self, build_agent):
        interpretation = MagicMock()
        interpretation.interpret = AsyncMock()
        agent = build_agent(
            intent_agent=_mock_intent_agent(["fb:set:userBenefits/b1:Estado=x", "fb:analytics:forecast"]),
            interpretation_agent=interpretation,
        )

        result = await agent.process_query("actualiza algo")

        assert result["success"] is False
        assert result["response"] == ALL_COMMANDS_FAILED_MESSAGE
        assert [r["error"] for r in result["results"]] == [
            "Operation 'set' is not supported", "Unknown analytics kind: forecast"
        ]
        interpretation.interpret.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_unprefixed_commands(self, build_agent):
        agent = build_agent(intent_agent=_mock_intent_agent(["firebase:analytics:investment"]))

        result = await agent.process_query("gastos")

        assert result["success"] is False
        assert result["response"] == ALL_COMMANDS_FAILED_MESSAGE
        assert result["results"] == []

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, build_agent):
        interpretation = MagicMock()
        interpretation.interpret = AsyncMock(side_effect=RuntimeError("boom"))
        agent = build_agent(interpretation_agent=interpretation)

        result = await agent.process_query("¿Cuánto gastamos en diciembre?")

        assert result["success"] is False
        assert result["response"] == PIPELINE_ERROR_MESSAGE
        assert result["error"] == "Orchestration failed: boom"

    @pytest.mark.asyncio
    async def test_missing_record_store_config(self, monkeypatch, today):
        monkeypatch.setattr(settings, "record_store_url", None)
        agent = OrchestrationAgent(
            intent_agent=IntentIdentificationAgent(today=lambda: today, use_llm=False),
            interpretation_agent=InterpretationAgent(use_llm=False),
        )

        result = await agent.process_query("¿Cuánto gastamos en diciembre?")

        assert result["success"] is False
        assert result["response"] == PIPELINE_ERROR_MESSAGE
        assert result["error"].startswith("Orchestration service unavailable")

    @pytest.mark.asyncio
    async def test_empty_query(self, build_agent):
        agent = build_agent()

        with pytest.raises(ValidationError):
            await agent.process_query("  ")
        assert await agent.answer("") == NO_COMMANDS_MESSAGE


# =============================================================================
# Batch, stats, cache and history
# =============================================================================

class TestAgentState:

    @pytest.mark.asyncio
    async def test_process_batch(self, build_agent):
        agent = build_agent()

        results = await agent.process_batch(["¿Cuánto gastamos en diciembre?", "", "progreso del mes"])

        assert [r["success"] for r in results] == [True, False, True]
        assert results[1]["response"] == NO_COMMANDS_MESSAGE
        assert await agent.process_batch([]) == []

    @pytest.mark.asyncio
    async def test_performance_stats(self, build_agent):
        agent = build_agent()
        await agent.process_query("¿Cuánto gastamos en diciembre?")
        await agent.process_query("¿Qué categorías son las más populares?")

        stats = agent.get_performance_stats()

        assert stats["totalRequests"] == 2
        assert stats["averageTotalTime"] >= stats["averageCommandTime"] >= 0
        assert set(stats["modelSplit"]) == {
            "intentPercentage", "commandPercentage", "interpretationPercentage"
        }
        assert stats["runnerStats"]["queriesExecuted"] == 2
        assert stats["cacheStats"]["fetches"] == 1

    def test_stats_before_any_request(self, build_agent):
        stats = build_agent().get_performance_stats()

        assert stats["totalRequests"] == 0
        assert stats["averageTotalTime"] == 0
        assert stats["modelSplit"]["intentPercentage"] == 0

    @pytest.mark.asyncio
    async def test_invalidate_cache(self, build_agent, store):
        agent = build_agent()
        await agent.process_query("¿Cuánto gastamos en diciembre?")
        agent.invalidate_cache()
        await agent.process_query("¿Cuánto gastamos en diciembre?")

        assert store.fetch_count == 2

    @pytest.mark.asyncio
    async def test_conversation_history(self, build_agent):
        agent = build_agent()
        await agent.process_query("¿Cuánto gastamos en diciembre?", preserve_history=True)
        await agent.process_query("progreso del mes")

        history = agent.get_conversation_history()
        assert len(history) == 1
        assert history[0]["commands"] == ["fb:analytics:investment:month=diciembre"]

        agent.clear_conversation_history()
        assert agent.get_conversation_history() == []

    @pytest.mark.asyncio
    async def test_history_is_kept_per_user(self, build_agent):
        agent = build_agent()
        await agent.process_query("¿Cuánto gastamos en diciembre?", {"userId": "u1"}, preserve_history=True)
        await agent.process_query("progreso del mes", {"userId": "u2"}, preserve_history=True)
        await agent.process_query("¿Qué categorías son las más populares?", {"userId": "u1"}, preserve_history=True)

        assert [h["commands"][0] for h in agent.get_conversation_history("u1")] == [
            "fb:analytics:investment:month=diciembre", "fb:analytics:top-categories"
        ]
        assert [h["query"] for h in agent.get_conversation_history("u2")] == ["progreso del mes"]
        assert agent.get_conversation_history() == []

        stats = agent.get_history_stats()
        assert stats["u1"]["messageCount"] == 2
        assert stats["u2"]["lastActivity"] == agent.get_conversation_history("u2")[0]["timestamp"]

        agent.clear_conversation_history("u1")
        assert agent.get_conversation_history("u1") == []
        assert len(agent.get_conversation_history("u2")) == 1

    @pytest.mark.asyncio
    async def test_history_keeps_latest_entries(self, build_agent):
        agent = build_agent(history_max_entries=2)
        for query in ["progreso del mes", "¿Cuánto gastamos en diciembre?", "¿Cuántos usuarios hay?"]:
            await agent.process_query(query, {"userId": "u1"}, preserve_history=True)

        assert [h["query"] for h in agent.get_conversation_history("u1")] == [
            "¿Cuánto gastamos en diciembre?", "¿Cuántos usuarios hay?"
        ]
