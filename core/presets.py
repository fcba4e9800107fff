"""
Presets and the ordered configuration overlay.

A request may name a preset, a custom configuration, or both, plus an
explicit execution mode. They are merged onto the defaults by applying
``CONFIG_LAYERS`` in order; a later layer wins over an earlier one. The
explicit execution mode is always applied last.

Custom configuration keys:

    agents                  full or partial agent blocks, keyed by specialization
    agent_models            {specialization: {"model": ..., "provider": ...}}
    custom_weights          {specialization: weight}
    advanced.temperatures   {specialization: temperature}
    advanced.prompts        {specialization: extra instructions}, appended
    orchestrator            partial orchestrator settings
    timeout_ms, fallback_to_single_agent
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import InvalidConfig
from .execution_config import ExecutionConfig, default_config, parse_config
from .types import ExecutionMode


TRINITY_PRESETS: Dict[str, Dict[str, Any]] = {
    "creative-writing": {
        "agents": {
            "creative": {"weight": 0.6, "temperature": 0.9},
            "analytical": {"weight": 0.2},
            "factual": {"weight": 0.2},
        },
        "orchestrator": {"blending_strategy": "weighted_merge", "temperature": 0.7},
    },
    "research-analysis": {
        "agents": {
            "factual": {"weight": 0.5},
            "analytical": {"weight": 0.4},
            "creative": {"weight": 0.1, "enabled": False},
        },
        "orchestrator": {"blending_strategy": "hierarchical", "temperature": 0.1},
    },
    "problem-solving": {
        "execution_mode": "sequential",
        "agents": {
            "analytical": {"weight": 0.4},
            "creative": {"weight": 0.35},
            "factual": {"weight": 0.25},
        },
        "orchestrator": {"blending_strategy": "synthesis"},
    },
    "brainstorming": {
        "agents": {
            "creative": {"weight": 0.7, "temperature": 1.0},
            "analytical": {"weight": 0.2},
            "factual": {"weight": 0.1},
        },
        "orchestrator": {"blending_strategy": "best_of_three", "temperature": 0.8},
    },
}


@dataclass
class OverlayRequest:
    preset: Optional[str] = None
    custom: Mapping[str, Any] = field(default_factory=dict)
    execution_mode: Optional[ExecutionMode] = None


LayerFn = Callable[[Dict[str, Any], OverlayRequest], None]


def _agent_block(data: Dict[str, Any], spec: str) -> Dict[str, Any]:
    if spec not in data["agents"]:
        raise InvalidConfig([{"loc": ["agents", spec], "msg": "unknown specialization"}])
    return data["agents"][spec]


def _merge_agent_blocks(data: Dict[str, Any], blocks: Mapping[str, Any]) -> None:
    for spec, block in blocks.items():
        _agent_block(data, spec).update(block)


def _per_agent(data: Dict[str, Any], values: Mapping[str, Any], key: str) -> None:
    for spec, value in values.items():
        if value is None:
            continue
        _merge_agent_blocks(data, {spec: {key: value}})


def _apply_preset(data: Dict[str, Any], request: OverlayRequest) -> None:
    if not request.preset:
        return
    preset = TRINITY_PRESETS.get(request.preset)
    if preset is None:
        raise InvalidConfig([{"loc": ["preset"], "msg": f"unknown preset '{request.preset}'"}])
    if "execution_mode" in preset:
        data["execution_mode"] = preset["execution_mode"]
    _merge_agent_blocks(data, preset.get("agents", {}))
    data["orchestrator"].update(preset.get("orchestrator", {}))


def _apply_custom_agents(data: Dict[str, Any], request: OverlayRequest) -> None:
    _merge_agent_blocks(data, request.custom.get("agents") or {})


def _apply_agent_models(data: Dict[str, Any], request: OverlayRequest) -> None:
    for spec, choice in (request.custom.get("agent_models") or {}).items():
        if not choice:
            continue
        block = {k: choice[k] for k in ("model", "provider") if choice.get(k)}
        _merge_agent_blocks(data, {spec: block})


def _apply_custom_weights(data: Dict[str, Any], request: OverlayRequest) -> None:
    _per_agent(data, request.custom.get("custom_weights") or {}, "weight")


def _apply_advanced_temperatures(data: Dict[str, Any], request: OverlayRequest) -> None:
    advanced = request.custom.get("advanced") or {}
    _per_agent(data, advanced.get("temperatures") or {}, "temperature")


def _apply_advanced_prompts(data: Dict[str, Any], request: OverlayRequest) -> None:
    advanced = request.custom.get("advanced") or {}
    for spec, extra in (advanced.get("prompts") or {}).items():
        if not extra:
            continue
        block = _agent_block(data, spec)
        block["system_prompt"] = f"{block['system_prompt']}\n\nAdditional instructions: {extra}"


def _apply_orchestrator(data: Dict[str, Any], request: OverlayRequest) -> None:
    data["orchestrator"].update(request.custom.get("orchestrator") or {})


def _apply_execution_settings(data: Dict[str, Any], request: OverlayRequest) -> None:
    for key in ("timeout_ms", "fallback_to_single_agent"):
        if request.custom.get(key) is not None:
            data[key] = request.custom[key]


def _apply_execution_mode(data: Dict[str, Any], request: OverlayRequest) -> None:
    if request.execution_mode is not None:
        data["execution_mode"] = ExecutionMode(request.execution_mode).value


CONFIG_LAYERS: Tuple[Tuple[str, LayerFn], ...] = (
    ("preset", _apply_preset),
    ("custom_agents", _apply_custom_agents),
    ("agent_models", _apply_agent_models),
    ("custom_weights", _apply_custom_weights),
    ("advanced_temperatures", _apply_advanced_temperatures),
    ("advanced_prompts", _apply_advanced_prompts),
    ("orchestrator", _apply_orchestrator),
    ("execution_settings", _apply_execution_settings),
    ("execution_mode", _apply_execution_mode),
)


def build_execution_config(
    execution_mode: Optional[ExecutionMode] = None,
    preset: Optional[str] = None,
    custom: Optional[Mapping[str, Any]] = None,
    base: Optional[ExecutionConfig] = None,
) -> ExecutionConfig:
    """
    Merge preset and custom overrides onto ``base`` (defaults if omitted).

    Args:
        execution_mode: Explicit mode; overrides anything a preset sets.
        preset: Name of an entry in ``TRINITY_PRESETS``.
        custom: Custom overrides (see module docstring).
        base: Starting configuration.

    Returns:
        A validated ExecutionConfig.

    Raises:
        InvalidConfig: unknown preset/specialization, or the merged result
            fails validation.
    """
    data = (base or default_config()).model_dump(mode="json")
    request = OverlayRequest(
        preset=preset,
        custom=custom or {},
        execution_mode=execution_mode,
    )
    for _name, layer in CONFIG_LAYERS:
        layer(data, request)
    return parse_config(data)
