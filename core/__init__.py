from .types import (
    AgentSpecialization,
    ExecutionMode,
    BlendingStrategy,
    StreamEventType,
    TokenUsage,
    AgentResult,
    Attribution,
    CompositeMeta,
    CompositeResult,
    StreamEvent,
    RuntimeContext,
)
from .errors import (
    TrinityError,
    AgentError,
    AgentTimeout,
    NoEnabledAgents,
    MissingCredential,
    AllAgentsFailed,
    FallbackExhausted,
    NoValidResponses,
    InvalidConfig,
)
from .execution_config import AgentConfig, OrchestratorConfig, ExecutionConfig, default_config
from .base_agent import Agent, SpecializationRules
from .llm import LLMProvider, LLMOptions, LLMService, ProviderLLMService, create_llm_client
from .credentials import Credentials, resolve_credentials

__all__ = [
    "AgentSpecialization",
    "ExecutionMode",
    "BlendingStrategy",
    "StreamEventType",
    "TokenUsage",
    "AgentResult",
    "Attribution",
    "CompositeMeta",
    "CompositeResult",
    "StreamEvent",
    "RuntimeContext",
    "TrinityError",
    "AgentError",
    "AgentTimeout",
    "NoEnabledAgents",
    "MissingCredential",
    "AllAgentsFailed",
    "FallbackExhausted",
    "NoValidResponses",
    "InvalidConfig",
    "AgentConfig",
    "OrchestratorConfig",
    "ExecutionConfig",
    "default_config",
    "Agent",
    "SpecializationRules",
    "LLMProvider",
    "LLMOptions",
    "LLMService",
    "ProviderLLMService",
    "create_llm_client",
    "Credentials",
    "resolve_credentials",
]
