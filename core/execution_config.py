"""
Execution configuration models.

An ``ExecutionConfig`` names the execution mode, one ``AgentConfig`` per
specialization (present even when disabled), the orchestrator settings, the
per-agent timeout and the fallback policy. All models are frozen: an update
yields a new, re-validated model.
"""

from typing import Any, Dict, List, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidConfig
from .types import (
    AgentSpecialization,
    BlendingStrategy,
    ExecutionMode,
    SPECIALIZATION_ORDER,
)


class AgentConfig(BaseModel):
    """Configuration for one specialized agent."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    specialization: AgentSpecialization
    model: str
    provider: str
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=2048, ge=1, le=4096)
    system_prompt: str = ""
    weight: float = Field(default=0.3, ge=0, le=1)
    enabled: bool = True

    def updated(self, **changes: Any) -> "AgentConfig":
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return AgentConfig.model_validate(data)


class OrchestratorConfig(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: str
    provider: str
    temperature: float = Field(default=0.3, ge=0, le=2)
    max_tokens: int = Field(default=4096, ge=1, le=8192)
    blending_strategy: BlendingStrategy = BlendingStrategy.SYNTHESIS


class ExecutionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    execution_mode: ExecutionMode = ExecutionMode.PARALLEL
    agents: Dict[AgentSpecialization, AgentConfig]
    orchestrator: OrchestratorConfig
    timeout_ms: int = Field(default=60000, ge=1000, le=300000)
    fallback_to_single_agent: bool = True

    @model_validator(mode="after")
    def _check_agents(self) -> "ExecutionConfig":
        missing = [s.value for s in SPECIALIZATION_ORDER if s not in self.agents]
        if missing:
            raise ValueError(f"agents missing specializations: {', '.join(missing)}")
        for key, agent in self.agents.items():
            if agent.specialization != key:
                raise ValueError(
                    f"agents[{key.value}] has specialization {agent.specialization.value}"
                )
        return self

    def agent(self, specialization: AgentSpecialization) -> AgentConfig:
        return self.agents[specialization]

    def enabled_specializations(self) -> List[AgentSpecialization]:
        """Enabled specializations in registration order."""
        return [s for s in SPECIALIZATION_ORDER if self.agents[s].enabled]

    def weights(self) -> Dict[AgentSpecialization, float]:
        return {s: cfg.weight for s, cfg in self.agents.items()}


DEFAULT_SYSTEM_PROMPTS: Dict[AgentSpecialization, str] = {
    AgentSpecialization.ANALYTICAL: """You are an analytical agent focused on logical reasoning, data analysis, and systematic problem-solving.
Your role is to:
- Break down complex problems into components
- Provide structured, logical analysis
- Identify patterns and relationships
- Offer evidence-based conclusions
- Highlight assumptions and potential biases

Always prioritize accuracy and logical consistency in your responses.""",
    AgentSpecialization.CREATIVE: """You are a creative agent focused on innovative thinking, alternative perspectives, and imaginative solutions.
Your role is to:
- Generate novel ideas and creative approaches
- Explore unconventional solutions
- Provide metaphors and analogies
- Think outside conventional frameworks
- Encourage exploration of possibilities

Embrace creativity while maintaining relevance to the user's needs.""",
    AgentSpecialization.FACTUAL: """You are a factual agent focused on accuracy, verification, and reliable information.
Your role is to:
- Provide accurate, verifiable information
- Cite sources when possible
- Flag uncertain or controversial claims
- Prioritize factual correctness
- Identify misinformation or inaccuracies

Always strive for truth and accuracy in your responses.""",
}


DEFAULT_AGENT_CONFIGS: Dict[AgentSpecialization, AgentConfig] = {
    AgentSpecialization.ANALYTICAL: AgentConfig(
        specialization=AgentSpecialization.ANALYTICAL,
        model="gpt-4o",
        provider="openai",
        temperature=0.1,
        max_tokens=2048,
        system_prompt=DEFAULT_SYSTEM_PROMPTS[AgentSpecialization.ANALYTICAL],
        weight=0.4,
    ),
    AgentSpecialization.CREATIVE: AgentConfig(
        specialization=AgentSpecialization.CREATIVE,
        model="gpt-4o",
        provider="openai",
        temperature=0.8,
        max_tokens=2048,
        system_prompt=DEFAULT_SYSTEM_PROMPTS[AgentSpecialization.CREATIVE],
        weight=0.3,
    ),
    AgentSpecialization.FACTUAL: AgentConfig(
        specialization=AgentSpecialization.FACTUAL,
        model="gpt-4o-mini",
        provider="openai",
        temperature=0.0,
        max_tokens=2048,
        system_prompt=DEFAULT_SYSTEM_PROMPTS[AgentSpecialization.FACTUAL],
        weight=0.3,
    ),
}

DEFAULT_ORCHESTRATOR_CONFIG = OrchestratorConfig(
    model="gpt-4o",
    provider="openai",
    temperature=0.3,
    max_tokens=4096,
    blending_strategy=BlendingStrategy.SYNTHESIS,
)


def default_config() -> ExecutionConfig:
    """Return the default configuration (parallel, all three agents, synthesis)."""
    return ExecutionConfig(
        execution_mode=ExecutionMode.PARALLEL,
        agents=dict(DEFAULT_AGENT_CONFIGS),
        orchestrator=DEFAULT_ORCHESTRATOR_CONFIG,
        timeout_ms=60000,
        fallback_to_single_agent=True,
    )


def parse_config(data: Union[ExecutionConfig, Mapping[str, Any]]) -> ExecutionConfig:
    """Validate ``data`` into an ``ExecutionConfig`` or raise ``InvalidConfig``."""
    if isinstance(data, ExecutionConfig):
        data = data.model_dump()
    try:
        return ExecutionConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(e.errors(include_url=False, include_context=False)) from e


def validate_config(data: Union[ExecutionConfig, Mapping[str, Any]]) -> bool:
    try:
        parse_config(data)
    except InvalidConfig:
        return False
    return True
