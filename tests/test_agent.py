"""Tests for the specialized agent, its rules and the agent registry."""

import pytest

from agents import SPECIALIZATION_RULES, AgentRegistry, create_agent
from core.base_agent import Agent, base_confidence, base_validate
from core.execution_config import default_config
from core.types import (
    AgentResult,
    AgentSpecialization,
    ResultMetadata,
    RuntimeContext,
    StreamEventType,
    TokenUsage,
)

from conftest import ANALYTICAL_TEXT, CREATIVE_TEXT, HISTORY, FakeLLMService

ANALYTICAL = AgentSpecialization.ANALYTICAL
CREATIVE = AgentSpecialization.CREATIVE
FACTUAL = AgentSpecialization.FACTUAL


def make_agent(spec: AgentSpecialization, llm: FakeLLMService) -> Agent:
    return create_agent(default_config().agent(spec), llm)


# ---------------------------------------------------------------------------
# Confidence and validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "content, finish_reason, expected",
    [
        ("short answer", "stop", 0.9),
        ("x" * 150, "stop", 1.0),
        ("maybe", "length", 0.5),
        ("plain", "content_filter", 0.4),
        ("plain", None, 0.7),
        ("I think this is clearly right", None, 0.7),
    ],
)
def test_base_confidence(content, finish_reason, expected):
    assert base_confidence(content, finish_reason) == pytest.approx(expected)


def test_confidence_is_always_clamped(llm):
    agent = make_agent(ANALYTICAL, llm)
    text = "definitely " + "data analysis " * 20
    assert agent.calculate_confidence(text, "stop") == 1.0
    assert 0.0 <= agent.calculate_confidence("", "content_filter") <= 1.0


def test_specialization_bonus(llm):
    analytical = make_agent(ANALYTICAL, llm)
    factual = make_agent(FACTUAL, llm)

    assert analytical.calculate_confidence("the data", None) == pytest.approx(0.8)
    assert analytical.calculate_confidence("nothing here", None) == pytest.approx(0.7)
    assert factual.calculate_confidence("It might rain", "stop") == pytest.approx(0.8)
    assert factual.calculate_confidence("a fact that might hold", "stop") == pytest.approx(0.9)


def test_base_validate_rejects_empty_and_short_errors():
    assert not base_validate("")
    assert not base_validate("   ")
    assert not base_validate("Error: timeout")
    assert base_validate("Error: " + "x" * 60)
    assert base_validate("anything else")


def test_analytical_requires_structure(llm):
    agent = make_agent(ANALYTICAL, llm)
    assert agent.validate(ANALYTICAL_TEXT)
    assert agent.validate("1. first point")
    assert not agent.validate("A plain sentence without any structure")


def test_creative_accepts_long_or_imaginative_text(llm):
    agent = make_agent(CREATIVE, llm)
    assert agent.validate(CREATIVE_TEXT)
    assert agent.validate("Imagine a city of glass")
    assert agent.validate("plain " * 40)
    assert not agent.validate("A plain short reply")


def test_factual_rejects_uncited_speculation(llm):
    agent = make_agent(FACTUAL, llm)
    assert not agent.validate("It is probably true")
    assert agent.validate("The survey data indicates it is probably true")
    assert agent.validate("Water boils at 100 C at sea level")


def test_every_specialization_has_rules():
    assert set(SPECIALIZATION_RULES) == set(AgentSpecialization)
    for spec, rules in SPECIALIZATION_RULES.items():
        assert rules.specialization == spec
        assert rules.keywords


# ---------------------------------------------------------------------------
# Construction and config updates
# ---------------------------------------------------------------------------


def test_agent_rejects_rules_for_another_specialization(llm):
    with pytest.raises(ValueError):
        Agent(default_config().agent(ANALYTICAL), llm, SPECIALIZATION_RULES[CREATIVE])


def test_update_config_keeps_specialization(llm):
    agent = make_agent(CREATIVE, llm)
    agent.update_config(temperature=1.2, model="claude-sonnet-4-20250514", provider="anthropic")
    assert agent.config.temperature == 1.2
    assert agent.config.provider == "anthropic"

    with pytest.raises(ValueError):
        agent.update_config(default_config().agent(FACTUAL))


# ---------------------------------------------------------------------------
# invoke / stream
# ---------------------------------------------------------------------------


async def test_invoke_returns_scored_result(llm):
    agent = make_agent(ANALYTICAL, llm)
    result = await agent.invoke(list(HISTORY), RuntimeContext(api_key="k"))

    assert result.specialization == ANALYTICAL
    assert result.content == ANALYTICAL_TEXT
    assert result.confidence == 1.0
    assert result.metadata.model == "gpt-4o"
    assert result.metadata.finish_reason == "stop"
    assert result.token_usage.total_tokens > 0
    assert not result.failed

    _, messages, options = llm.calls[0]
    assert messages[0]["role"] == "system"
    assert messages[-1] == HISTORY[0]
    assert options.api_key == "k"
    assert options.temperature == 0.1


async def test_invoke_turns_provider_error_into_error_result():
    llm = FakeLLMService(errors={"factual": RuntimeError("rate limited")})
    agent = make_agent(FACTUAL, llm)

    result = await agent.invoke(list(HISTORY))

    assert result.confidence == 0.0
    assert result.content == "Error: rate limited"
    assert result.metadata.finish_reason == "error"
    assert result.failed


async def test_invoke_shares_previous_results(llm):
    agent = make_agent(CREATIVE, llm)
    previous = AgentResult(
        specialization=ANALYTICAL,
        content="Earlier analysis",
        confidence=0.8,
        execution_time_ms=10,
        token_usage=TokenUsage(),
        metadata=ResultMetadata(model="gpt-4o", provider="openai", temperature=0.1),
    )

    await agent.invoke(list(HISTORY), RuntimeContext(previous_results=(previous,)))

    _, messages, _ = llm.calls[0]
    assert messages[1]["role"] == "system"
    assert "Earlier analysis" in messages[1]["content"]
    assert "[ANALYTICAL]" in messages[1]["content"]


async def test_stream_event_order(llm):
    agent = make_agent(CREATIVE, llm)
    events = [event async for event in agent.stream(list(HISTORY))]

    assert events[0].type == StreamEventType.AGENT_START
    assert events[-1].type == StreamEventType.AGENT_COMPLETE
    chunks = events[1:-1]
    assert chunks and all(e.type == StreamEventType.AGENT_CHUNK for e in chunks)
    assert "".join(e.delta for e in chunks) == CREATIVE_TEXT

    complete = events[-1]
    assert complete.content == CREATIVE_TEXT
    assert complete.is_complete
    assert complete.metadata["confidence"] == 1.0
    assert complete.metadata["finish_reason"] == "stop"
    assert isinstance(complete.metadata["token_usage"], TokenUsage)


async def test_stream_failure_ends_with_error_complete():
    llm = FakeLLMService(errors={"creative": RuntimeError("boom")})
    agent = make_agent(CREATIVE, llm)
    events = [event async for event in agent.stream(list(HISTORY))]

    assert [e.type for e in events] == [
        StreamEventType.AGENT_START,
        StreamEventType.AGENT_COMPLETE,
    ]
    assert events[-1].content == "Error: boom"
    assert events[-1].metadata["confidence"] == 0.0
    assert events[-1].metadata["finish_reason"] == "error"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registry_resolves_enabled_agents_in_order(llm):
    config = default_config()
    config = config.model_copy(update={
        "agents": {**config.agents, CREATIVE: config.agent(CREATIVE).updated(enabled=False)},
    })
    registry = AgentRegistry(llm)

    agents = registry.resolve(config)

    assert [a.specialization for a in agents] == [ANALYTICAL, FACTUAL]
    assert registry.get(CREATIVE) is None
    assert len(registry) == 2


def test_registry_reuses_agents_with_new_config(llm):
    registry = AgentRegistry(llm)
    config = default_config()
    first = registry.resolve(config)[0]

    updated = config.model_copy(update={
        "agents": {**config.agents, ANALYTICAL: config.agent(ANALYTICAL).updated(temperature=0.5)},
    })
    second = registry.resolve(updated)[0]

    assert first is second
    assert second.config.temperature == 0.5
