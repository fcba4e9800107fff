"""Tests for presets and the ordered config overlay."""

import pytest

from core.errors import InvalidConfig
from core.execution_config import DEFAULT_SYSTEM_PROMPTS, default_config
from core.presets import CONFIG_LAYERS, TRINITY_PRESETS, build_execution_config
from core.types import AgentSpecialization, BlendingStrategy, ExecutionMode

ANALYTICAL = AgentSpecialization.ANALYTICAL
CREATIVE = AgentSpecialization.CREATIVE
FACTUAL = AgentSpecialization.FACTUAL


def test_layer_order_is_fixed():
    assert [name for name, _ in CONFIG_LAYERS] == [
        "preset",
        "custom_agents",
        "agent_models",
        "custom_weights",
        "advanced_temperatures",
        "advanced_prompts",
        "orchestrator",
        "execution_settings",
        "execution_mode",
    ]


def test_no_overrides_gives_defaults():
    assert build_execution_config() == default_config()


@pytest.mark.parametrize("name", sorted(TRINITY_PRESETS))
def test_every_preset_builds(name):
    config = build_execution_config(preset=name)
    assert config.enabled_specializations()


def test_research_preset_disables_creative():
    config = build_execution_config(preset="research-analysis")

    assert config.enabled_specializations() == [ANALYTICAL, FACTUAL]
    assert config.orchestrator.blending_strategy == BlendingStrategy.HIERARCHICAL
    assert config.agent(FACTUAL).weight == 0.5


def test_explicit_mode_beats_preset_mode():
    assert build_execution_config(preset="problem-solving").execution_mode == ExecutionMode.SEQUENTIAL

    config = build_execution_config(execution_mode=ExecutionMode.HYBRID, preset="problem-solving")
    assert config.execution_mode == ExecutionMode.HYBRID


def test_later_layers_win():
    config = build_execution_config(
        preset="creative-writing",
        custom={
            "agents": {"creative": {"weight": 0.5, "temperature": 0.4}},
            "agent_models": {"factual": {"model": "claude-sonnet-4-20250514", "provider": "anthropic"}},
            "custom_weights": {"creative": 0.2},
            "advanced": {
                "temperatures": {"creative": 0.2},
                "prompts": {"analytical": "Answer in bullet points."},
            },
            "orchestrator": {"blending_strategy": "best_of_three"},
            "timeout_ms": 5000,
        },
    )

    assert config.agent(CREATIVE).weight == 0.2
    assert config.agent(CREATIVE).temperature == 0.2
    assert config.agent(FACTUAL).provider == "anthropic"
    assert config.agent(FACTUAL).model == "claude-sonnet-4-20250514"
    assert config.agent(ANALYTICAL).system_prompt == (
        DEFAULT_SYSTEM_PROMPTS[ANALYTICAL] + "\n\nAdditional instructions: Answer in bullet points."
    )
    assert config.orchestrator.blending_strategy == BlendingStrategy.BEST_OF_THREE
    # creative-writing sets the orchestrator temperature; the override keeps it
    assert config.orchestrator.temperature == 0.7
    assert config.timeout_ms == 5000


def test_partial_agent_model_choice_keeps_other_field():
    config = build_execution_config(custom={"agent_models": {"creative": {"model": "gpt-4o-mini"}}})
    assert config.agent(CREATIVE).model == "gpt-4o-mini"
    assert config.agent(CREATIVE).provider == "openai"


def test_base_config_is_not_modified():
    base = default_config()
    build_execution_config(preset="brainstorming", base=base)
    assert base == default_config()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"preset": "does-not-exist"},
        {"custom": {"custom_weights": {"philosophical": 0.5}}},
        {"custom": {"advanced": {"temperatures": {"creative": 3.0}}}},
        {"custom": {"custom_weights": {"factual": 1.5}}},
        {"custom": {"timeout_ms": 10}},
        {"custom": {"orchestrator": {"blending_strategy": "majority_vote"}}},
    ],
)
def test_invalid_overrides_raise(kwargs):
    with pytest.raises(InvalidConfig):
        build_execution_config(**kwargs)
