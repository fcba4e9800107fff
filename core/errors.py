"""
Error taxonomy for Trinity execution.

Only manager-level conditions reach the caller. Individual agent failures
(``AgentError`` / ``AgentTimeout``) are logged and absorbed by the scheduler
unless sequential mode is configured to abort on the first failure.
"""

from typing import List, Optional, Sequence


class TrinityError(Exception):
    """Base class for every error raised by the orchestration core."""


class AgentError(TrinityError):
    """One agent's call failed or produced an error result."""

    def __init__(self, specialization, reason: str):
        self.specialization = specialization
        self.reason = reason
        label = getattr(specialization, "value", specialization)
        super().__init__(f"Agent {label} failed: {reason}")


class AgentTimeout(AgentError):
    """An agent did not settle within the configured timeout."""

    def __init__(self, specialization, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(specialization, f"timed out after {timeout_ms}ms")


class NoEnabledAgents(TrinityError):
    def __init__(self, message: str = "No enabled agents in configuration"):
        super().__init__(message)


class MissingCredential(TrinityError):
    """Credentials are absent for one or more providers that will be called."""

    def __init__(self, providers: Sequence[str]):
        self.providers: List[str] = list(providers)
        super().__init__(f"Missing API keys for providers: {', '.join(self.providers)}")


class AllAgentsFailed(TrinityError):
    def __init__(self, errors: Optional[Sequence[Exception]] = None):
        self.errors = list(errors or [])
        super().__init__(f"All agents failed to respond ({len(self.errors)} errors)")


class FallbackExhausted(TrinityError):
    def __init__(self, specialization, reason: str):
        self.specialization = specialization
        self.reason = reason
        label = getattr(specialization, "value", specialization)
        super().__init__(f"Fallback execution with {label} agent failed: {reason}")


class NoValidResponses(TrinityError):
    def __init__(self, message: str = "No valid agent responses to blend"):
        super().__init__(message)


class InvalidConfig(TrinityError):
    def __init__(self, errors):
        self.errors = errors
        super().__init__(f"Invalid execution config: {errors}")
