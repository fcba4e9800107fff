"""
Provider credential lookup.

Keys are looked up once per call, before any agent runs, so a request with
a missing key fails fast instead of after the first provider error.

Usage:
    resolver = EnvCredentialResolver(config.provider_keys())
    credentials = resolve_credentials(resolver, user_id, execution_config)
    result = await manager.execute(history, execution_config, credentials)
"""

from typing import Dict, List, Mapping, Optional, Protocol
from dataclasses import dataclass, field

from .errors import MissingCredential
from .execution_config import ExecutionConfig
from .types import AgentSpecialization, BlendingStrategy


class CredentialResolver(Protocol):
    def resolve(self, user_id: str, provider: str) -> Optional[str]:
        ...


class EnvCredentialResolver:
    """Same provider keys for every user, usually read from the environment."""

    def __init__(self, keys: Mapping[str, Optional[str]]):
        self._keys = {provider: key for provider, key in keys.items() if key}

    def resolve(self, user_id: str, provider: str) -> Optional[str]:
        return self._keys.get(provider)


class StaticCredentialResolver:
    """Per-user provider keys held in memory."""

    def __init__(self, user_keys: Optional[Mapping[str, Mapping[str, str]]] = None):
        self._user_keys: Dict[str, Dict[str, str]] = {
            user: dict(keys) for user, keys in (user_keys or {}).items()
        }

    def set_key(self, user_id: str, provider: str, key: str) -> None:
        self._user_keys.setdefault(user_id, {})[provider] = key

    def resolve(self, user_id: str, provider: str) -> Optional[str]:
        return self._user_keys.get(user_id, {}).get(provider)


def needs_orchestrator_call(config: ExecutionConfig) -> bool:
    """True when blending can reach the orchestrator's LLM."""
    return (
        config.orchestrator.blending_strategy != BlendingStrategy.BEST_OF_THREE
        and len(config.enabled_specializations()) > 1
    )


@dataclass(frozen=True)
class Credentials:
    """API keys for one call: one per specialization plus the orchestrator's."""
    agent_keys: Mapping[AgentSpecialization, Optional[str]] = field(default_factory=dict)
    orchestrator_key: Optional[str] = None

    @classmethod
    def from_provider_keys(
        cls,
        config: ExecutionConfig,
        keys: Mapping[str, Optional[str]],
    ) -> "Credentials":
        """Pick each agent's key by its configured provider."""
        return cls(
            agent_keys={
                spec: keys.get(config.agent(spec).provider)
                for spec in config.enabled_specializations()
            },
            orchestrator_key=keys.get(config.orchestrator.provider),
        )

    def for_agent(self, specialization: AgentSpecialization) -> str:
        return self.agent_keys.get(specialization) or ""

    def missing_providers(self, config: ExecutionConfig) -> List[str]:
        missing: List[str] = []
        for spec in config.enabled_specializations():
            provider = config.agent(spec).provider
            if not self.agent_keys.get(spec) and provider not in missing:
                missing.append(provider)
        if needs_orchestrator_call(config) and not self.orchestrator_key:
            if config.orchestrator.provider not in missing:
                missing.append(config.orchestrator.provider)
        return missing

    def require(self, config: ExecutionConfig) -> None:
        """Raise MissingCredential naming every provider without a key."""
        missing = self.missing_providers(config)
        if missing:
            raise MissingCredential(missing)

    def __repr__(self) -> str:
        present = sorted(spec.value for spec, key in self.agent_keys.items() if key)
        return f"Credentials(agents={present}, orchestrator={bool(self.orchestrator_key)})"


def resolve_credentials(
    resolver: CredentialResolver,
    user_id: str,
    config: ExecutionConfig,
) -> Credentials:
    """
    Look up every key a call will need.

    Args:
        resolver: Credential source.
        user_id: Caller whose keys are used.
        config: Execution config; only enabled agents are resolved.

    Returns:
        Credentials for the call.

    Raises:
        MissingCredential: one or more providers have no key.
    """
    agent_keys = {
        spec: resolver.resolve(user_id, config.agent(spec).provider)
        for spec in config.enabled_specializations()
    }
    orchestrator_key = None
    if needs_orchestrator_call(config):
        orchestrator_key = resolver.resolve(user_id, config.orchestrator.provider)

    credentials = Credentials(agent_keys=agent_keys, orchestrator_key=orchestrator_key)
    credentials.require(config)
    return credentials
