"""Shared test fixtures: a scripted LLM service and an ASGI client."""

import asyncio
from typing import AsyncIterator, Dict, List, Optional, Tuple

import pytest
from httpx import ASGITransport, AsyncClient

from agents import ExecutionManager
from core.credentials import Credentials
from core.execution_config import DEFAULT_SYSTEM_PROMPTS
from core.llm import LLMOptions, LLMResponse, LLMStreamChunk
from core.types import AgentSpecialization, TokenUsage

ORCHESTRATOR = "orchestrator"

ANALYTICAL_TEXT = (
    "Analysis of the data shows a clear pattern in deployment failures. Firstly, most "
    "incidents follow configuration changes. Therefore we conclude that reviewing "
    "configuration is the main lever for reliability."
)
CREATIVE_TEXT = (
    "Imagine the deployment pipeline as a relay race where each handoff is a chance to "
    "drop the baton. A creative approach is to rehearse handoffs like a theatre troupe, "
    "with innovative dress rehearsals before every release."
)
FACTUAL_TEXT = (
    "According to published incident research, most outages are triggered by changes. "
    "A widely cited study of large services reports that configuration changes are the "
    "leading source of incidents."
)
BLENDED_TEXT = (
    "Deployment failures mostly follow configuration changes, so treat configuration "
    "review as the main lever and rehearse releases like a relay handoff."
)

DEFAULT_RESPONSES: Dict[str, str] = {
    AgentSpecialization.ANALYTICAL.value: ANALYTICAL_TEXT,
    AgentSpecialization.CREATIVE.value: CREATIVE_TEXT,
    AgentSpecialization.FACTUAL.value: FACTUAL_TEXT,
    ORCHESTRATOR: BLENDED_TEXT,
}

# Each default agent prompt opens with a distinct first line.
PROMPT_PREFIXES: Dict[str, str] = {
    spec.value: prompt.splitlines()[0] for spec, prompt in DEFAULT_SYSTEM_PROMPTS.items()
}

HISTORY = [{"role": "user", "content": "Why do our deployments keep failing?"}]


class FakeLLMService:
    """
    Scripted LLMService keyed by role (a specialization value or "orchestrator").

    Args:
        responses: Text returned per role; defaults cover every role.
        delays: Seconds to wait before answering, per role.
        errors: Exception raised per role.
        fail_times: Raise ``errors[role]`` (or a RuntimeError) only for the
            first N calls of a role.
        finish_reason: Finish reason reported for every answer.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        delays: Optional[Dict[str, float]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        fail_times: Optional[Dict[str, int]] = None,
        finish_reason: str = "stop",
    ):
        self.responses = dict(DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.delays = delays or {}
        self.errors = errors or {}
        self.fail_times = fail_times or {}
        self.finish_reason = finish_reason
        self.calls: List[Tuple[str, List[Dict[str, str]], LLMOptions]] = []
        self.cancelled: List[str] = []

    @staticmethod
    def role_of(messages: List[Dict[str, str]]) -> str:
        system = messages[0]["content"] if messages and messages[0]["role"] == "system" else ""
        for role, prefix in PROMPT_PREFIXES.items():
            if system.startswith(prefix):
                return role
        return ORCHESTRATOR

    def calls_for(self, role: str) -> List[Tuple[str, List[Dict[str, str]], LLMOptions]]:
        return [call for call in self.calls if call[0] == role]

    def _should_fail(self, role: str) -> bool:
        if role in self.fail_times:
            return len(self.calls_for(role)) <= self.fail_times[role]
        return role in self.errors

    async def _wait(self, role: str) -> None:
        delay = self.delays.get(role, 0)
        if not delay:
            return
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(role)
            raise

    def _usage(self, content: str) -> TokenUsage:
        completion = len(content.split())
        return TokenUsage(10, completion, 10 + completion)

    async def invoke(self, messages: List[Dict[str, str]], options: LLMOptions) -> LLMResponse:
        role = self.role_of(messages)
        self.calls.append((role, messages, options))
        await self._wait(role)
        if self._should_fail(role):
            raise self.errors.get(role, RuntimeError(f"{role} provider unavailable"))
        content = self.responses[role]
        return LLMResponse(
            content=content,
            model=options.model,
            provider=options.provider,
            usage=self._usage(content),
            finish_reason=self.finish_reason,
        )

    async def stream(
        self, messages: List[Dict[str, str]], options: LLMOptions
    ) -> AsyncIterator[LLMStreamChunk]:
        role = self.role_of(messages)
        self.calls.append((role, messages, options))
        await self._wait(role)
        if self._should_fail(role):
            raise self.errors.get(role, RuntimeError(f"{role} provider unavailable"))
        content = ""
        for word in self.responses[role].split(" "):
            delta = word if not content else " " + word
            content += delta
            await asyncio.sleep(0)
            yield LLMStreamChunk(delta=delta, content=content, is_complete=False)
        yield LLMStreamChunk(
            delta="",
            content=content,
            is_complete=True,
            usage=self._usage(content),
            finish_reason=self.finish_reason,
        )


def make_credentials() -> Credentials:
    return Credentials(
        agent_keys={spec: "test-key" for spec in AgentSpecialization},
        orchestrator_key="test-key",
    )


@pytest.fixture
def llm() -> FakeLLMService:
    return FakeLLMService()


@pytest.fixture
def manager(llm: FakeLLMService) -> ExecutionManager:
    return ExecutionManager(llm, stagger_seconds=0)


@pytest.fixture
def credentials() -> Credentials:
    return make_credentials()


@pytest.fixture
def history() -> List[Dict[str, str]]:
    return [dict(m) for m in HISTORY]


@pytest.fixture
async def client(llm: FakeLLMService) -> AsyncClient:
    """Async HTTP client against the FastAPI app with providers faked out."""
    from api.main import app, get_credential_resolver, get_execution_manager, get_message_store
    from core.credentials import EnvCredentialResolver
    from storage.memory import MessageStore

    store = MessageStore()
    keys = {"openai": "test-key", "anthropic": "test-key"}
    app.dependency_overrides[get_execution_manager] = lambda: ExecutionManager(llm, stagger_seconds=0)
    app.dependency_overrides[get_credential_resolver] = lambda: EnvCredentialResolver(keys)
    app.dependency_overrides[get_message_store] = lambda: store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
