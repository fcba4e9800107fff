from enum import Enum
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field, replace
import time


class AgentSpecialization(Enum):
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    FACTUAL = "factual"


# Registration order: the order agents are resolved, run sequentially and drained.
SPECIALIZATION_ORDER: Tuple[AgentSpecialization, ...] = (
    AgentSpecialization.ANALYTICAL,
    AgentSpecialization.CREATIVE,
    AgentSpecialization.FACTUAL,
)


class ExecutionMode(Enum):
    PARALLEL = "parallel"      # All enabled agents run simultaneously
    SEQUENTIAL = "sequential"  # Agents run one after another, sharing context
    HYBRID = "hybrid"          # Factual + analytical in parallel, then creative


class BlendingStrategy(Enum):
    WEIGHTED_MERGE = "weighted_merge"
    BEST_OF_THREE = "best_of_three"
    SYNTHESIS = "synthesis"
    HIERARCHICAL = "hierarchical"


class StreamEventType(Enum):
    AGENT_START = "agent_start"
    AGENT_CHUNK = "agent_chunk"
    AGENT_COMPLETE = "agent_complete"
    ORCHESTRATOR_CHUNK = "orchestrator_chunk"
    TRINITY_COMPLETE = "trinity_complete"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def aggregate(cls, usages: List["TokenUsage"]) -> "TokenUsage":
        total = cls()
        for usage in usages:
            total = total + usage
        return total

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ResultMetadata:
    model: str
    provider: str
    temperature: float
    finish_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "model": self.model,
            "provider": self.provider,
            "temperature": self.temperature,
        }
        if self.finish_reason is not None:
            data["finish_reason"] = self.finish_reason
        return data


@dataclass(frozen=True)
class AgentResult:
    """Output of one agent invocation.

    Immutable. Conflict resolution derives adjusted copies through
    ``with_confidence`` instead of mutating the original.
    """
    specialization: AgentSpecialization
    content: str
    confidence: float
    execution_time_ms: int
    token_usage: TokenUsage
    metadata: ResultMetadata

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp(self.confidence))

    @property
    def failed(self) -> bool:
        """True for results produced from a caught provider error."""
        return (
            self.metadata.finish_reason == "error"
            or self.confidence == 0
            or not self.content
            or self.content.startswith("Error:")
        )

    def with_confidence(self, confidence: float) -> "AgentResult":
        return replace(self, confidence=clamp(confidence))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specialization": self.specialization.value,
            "content": self.content,
            "confidence": self.confidence,
            "execution_time_ms": self.execution_time_ms,
            "token_usage": self.token_usage.to_dict(),
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class Attribution:
    contribution_percentage: float
    key_insights: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.contribution_percentage = clamp(self.contribution_percentage)
        self.key_insights = list(self.key_insights)[:3]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contribution_percentage": self.contribution_percentage,
            "key_insights": self.key_insights,
        }


@dataclass
class CompositeMeta:
    blending_strategy: BlendingStrategy
    execution_mode: ExecutionMode
    total_execution_time_ms: int
    token_usage: TokenUsage
    fallback_used: bool = False
    # Orchestrator call failed and the best-ranked answer was used instead
    blend_degraded: bool = False
    # Agent whose text is the final answer, when no orchestrator call made it
    answered_by: Optional[AgentSpecialization] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blending_strategy": self.blending_strategy.value,
            "execution_mode": self.execution_mode.value,
            "total_execution_time_ms": self.total_execution_time_ms,
            "token_usage": self.token_usage.to_dict(),
            "fallback_used": self.fallback_used,
            "blend_degraded": self.blend_degraded,
            "answered_by": self.answered_by.value if self.answered_by else None,
        }


@dataclass
class CompositeResult:
    """Final bundled output of one orchestration run."""
    final_response: str
    agent_results: List[AgentResult]
    meta: CompositeMeta
    attribution: Dict[AgentSpecialization, Attribution] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_response": self.final_response,
            "agent_results": [r.to_dict() for r in self.agent_results],
            "meta": self.meta.to_dict(),
            "attribution": {
                spec.value: attr.to_dict()
                for spec, attr in self.attribution.items()
            },
        }


@dataclass
class StreamEvent:
    type: StreamEventType
    content: str = ""
    delta: str = ""
    is_complete: bool = False
    specialization: Optional[AgentSpecialization] = None
    timestamp: int = field(default_factory=now_ms)
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "content": self.content,
            "delta": self.delta,
            "is_complete": self.is_complete,
            "timestamp": self.timestamp,
        }
        if self.specialization is not None:
            data["specialization"] = self.specialization.value
        if self.metadata is not None:
            metadata = dict(self.metadata)
            usage = metadata.get("token_usage")
            if isinstance(usage, TokenUsage):
                metadata["token_usage"] = usage.to_dict()
            data["metadata"] = metadata
        return data


@dataclass(frozen=True)
class RuntimeContext:
    """Per-invocation context handed to an agent by the scheduler."""
    api_key: str = ""
    previous_results: Tuple[AgentResult, ...] = ()
    phase: str = "parallel"
