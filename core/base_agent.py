from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
import time

import structlog

from .execution_config import AgentConfig
from .llm import LLMOptions, LLMService
from .types import (
    AgentResult,
    AgentSpecialization,
    ResultMetadata,
    RuntimeContext,
    StreamEvent,
    StreamEventType,
    TokenUsage,
    clamp,
)

logger = structlog.get_logger()

HEDGING_MARKERS = ("I think", "maybe", "possibly")
ASSERTIVE_MARKERS = ("definitely", "certainly", "clearly")

FINISH_REASON_ADJUSTMENTS: Dict[str, float] = {
    "stop": 0.2,
    "length": -0.1,
    "content_filter": -0.3,
}


@dataclass(frozen=True)
class SpecializationRules:
    """Validation and scoring rules for one specialization.

    ``keywords`` are the domain markers shared by confidence scoring,
    response ranking and key-insight extraction.
    """
    specialization: AgentSpecialization
    keywords: Tuple[str, ...]
    validate: Callable[[str], bool]
    confidence_bonus: Callable[[str], float]

    def has_keyword(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


def base_confidence(content: str, finish_reason: Optional[str] = None) -> float:
    """Specialization-independent confidence heuristic, clamped to [0, 1]."""
    confidence = 0.7
    confidence += FINISH_REASON_ADJUSTMENTS.get(finish_reason or "", 0.0)

    if len(content) > 100:
        confidence += 0.1
    if any(marker in content for marker in HEDGING_MARKERS):
        confidence -= 0.1
    if any(marker in content for marker in ASSERTIVE_MARKERS):
        confidence += 0.1

    return clamp(confidence)


def base_validate(text: str) -> bool:
    """Reject empty output and short error strings."""
    if not text or not text.strip():
        return False
    if text.startswith("Error:") and len(text) < 50:
        return False
    return True


class Agent:
    """One specialized LLM-backed responder.

    The agent is stateless between calls apart from its config, which the
    registry may replace between requests. Specialization behaviour comes
    from ``rules``; there are no per-specialization subclasses.
    """

    def __init__(self, config: AgentConfig, llm: LLMService, rules: SpecializationRules):
        if rules.specialization != config.specialization:
            raise ValueError(
                f"Rules for {rules.specialization.value} given to "
                f"{config.specialization.value} agent"
            )
        self.config = config
        self.llm = llm
        self.rules = rules

    @property
    def specialization(self) -> AgentSpecialization:
        return self.config.specialization

    def update_config(self, config: Optional[AgentConfig] = None, **changes: Any) -> None:
        """Replace the config with ``config`` and/or a copy carrying ``changes``."""
        new_config = config or self.config
        if changes:
            new_config = new_config.updated(**changes)
        if new_config.specialization != self.specialization:
            raise ValueError("An agent's specialization cannot change")
        self.config = new_config

    def calculate_confidence(self, content: str, finish_reason: Optional[str] = None) -> float:
        confidence = base_confidence(content, finish_reason)
        return clamp(confidence + self.rules.confidence_bonus(content))

    def validate(self, text: str) -> bool:
        return base_validate(text) and self.rules.validate(text)

    def _build_messages(
        self,
        config: AgentConfig,
        history: List[Dict[str, str]],
        context: RuntimeContext,
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": config.system_prompt}]
        if context.previous_results:
            perspectives = "\n\n".join(
                f"[{r.specialization.value.upper()}] (confidence {r.confidence * 100:.0f}%):\n{r.content}"
                for r in context.previous_results
            )
            messages.append({
                "role": "system",
                "content": (
                    "Perspectives already provided by other agents:\n\n"
                    f"{perspectives}\n\n"
                    "Build on them where useful and contribute what your specialization adds."
                ),
            })
        messages.extend(history)
        return messages

    @staticmethod
    def _options(config: AgentConfig, context: RuntimeContext) -> LLMOptions:
        return LLMOptions(
            model=config.model,
            provider=config.provider,
            api_key=context.api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    def _error_result(self, config: AgentConfig, error: Exception, start_time: float) -> AgentResult:
        return AgentResult(
            specialization=self.specialization,
            content=f"Error: {error}",
            confidence=0.0,
            execution_time_ms=int((time.time() - start_time) * 1000),
            token_usage=TokenUsage(),
            metadata=ResultMetadata(
                model=config.model,
                provider=config.provider,
                temperature=config.temperature,
                finish_reason="error",
            ),
        )

    async def invoke(
        self,
        history: List[Dict[str, str]],
        context: Optional[RuntimeContext] = None,
    ) -> AgentResult:
        """
        Run one completion for this agent.

        Provider errors are caught and returned as an error result with
        confidence 0 and ``finish_reason="error"``; cancellation propagates.

        Args:
            history: Conversation so far, oldest first.
            context: API key and results of agents that ran before this one.

        Returns:
            AgentResult for this invocation.
        """
        context = context or RuntimeContext()
        config = self.config
        start_time = time.time()

        try:
            response = await self.llm.invoke(
                self._build_messages(config, history, context),
                self._options(config, context),
            )
        except Exception as e:
            logger.warning(
                "Agent call failed",
                agent=self.specialization.value,
                provider=config.provider,
                model=config.model,
                error=str(e),
            )
            return self._error_result(config, e, start_time)

        execution_time = int((time.time() - start_time) * 1000)
        confidence = self.calculate_confidence(response.content, response.finish_reason)

        logger.info(
            "Agent responded",
            agent=self.specialization.value,
            model=config.model,
            confidence=round(confidence, 3),
            tokens=response.usage.total_tokens,
            duration_ms=execution_time,
        )

        return AgentResult(
            specialization=self.specialization,
            content=response.content,
            confidence=confidence,
            execution_time_ms=execution_time,
            token_usage=response.usage,
            metadata=ResultMetadata(
                model=config.model,
                provider=config.provider,
                temperature=config.temperature,
                finish_reason=response.finish_reason,
            ),
        )

    async def stream(
        self,
        history: List[Dict[str, str]],
        context: Optional[RuntimeContext] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream this agent's answer as events.

        Yields ``agent_start``, then an ``agent_chunk`` per provider delta,
        then exactly one ``agent_complete``. A provider failure ends the
        stream with an error ``agent_complete`` (confidence 0). The iterator
        is single-use.
        """
        context = context or RuntimeContext(phase="stream")
        config = self.config
        start_time = time.time()

        yield StreamEvent(type=StreamEventType.AGENT_START, specialization=self.specialization)

        content = ""
        usage = TokenUsage()
        finish_reason: Optional[str] = None

        try:
            async for chunk in self.llm.stream(
                self._build_messages(config, history, context),
                self._options(config, context),
            ):
                content = chunk.content
                if chunk.usage is not None:
                    usage = chunk.usage
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason
                if chunk.is_complete:
                    continue
                yield StreamEvent(
                    type=StreamEventType.AGENT_CHUNK,
                    specialization=self.specialization,
                    content=chunk.content,
                    delta=chunk.delta,
                )
        except Exception as e:
            logger.warning(
                "Agent stream failed",
                agent=self.specialization.value,
                provider=config.provider,
                error=str(e),
            )
            yield StreamEvent(
                type=StreamEventType.AGENT_COMPLETE,
                specialization=self.specialization,
                content=f"Error: {e}",
                is_complete=True,
                metadata={
                    "confidence": 0.0,
                    "execution_time_ms": int((time.time() - start_time) * 1000),
                    "token_usage": TokenUsage(),
                    "finish_reason": "error",
                },
            )
            return

        yield StreamEvent(
            type=StreamEventType.AGENT_COMPLETE,
            specialization=self.specialization,
            content=content,
            is_complete=True,
            metadata={
                "confidence": self.calculate_confidence(content, finish_reason),
                "execution_time_ms": int((time.time() - start_time) * 1000),
                "token_usage": usage,
                "finish_reason": finish_reason,
            },
        )
