import asyncio
import time
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import structlog

from core.base_agent import Agent
from core.credentials import Credentials
from core.errors import (
    AgentError,
    AgentTimeout,
    AllAgentsFailed,
    FallbackExhausted,
    NoEnabledAgents,
)
from core.execution_config import ExecutionConfig
from core.execution_config import default_config as _default_config
from core.execution_config import validate_config as _validate_config
from core.llm import LLMService
from core.types import (
    AgentResult,
    AgentSpecialization,
    Attribution,
    BlendingStrategy,
    CompositeMeta,
    CompositeResult,
    ExecutionMode,
    ResultMetadata,
    RuntimeContext,
    SPECIALIZATION_ORDER,
    StreamEvent,
    StreamEventType,
    TokenUsage,
)

from .orchestrator import Orchestrator
from .registry import AgentRegistry

logger = structlog.get_logger()

History = List[Dict[str, str]]

HYBRID_FIRST_PHASE = (AgentSpecialization.ANALYTICAL, AgentSpecialization.FACTUAL)
HYBRID_SECOND_PHASE = (AgentSpecialization.CREATIVE,)

FALLBACK_INSIGHT = "Fallback response from single agent"
ORCHESTRATOR_CHUNK_SIZE = 40


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


class ExecutionManager:
    """
    ExecutionManager: runs the enabled agents and bundles their answers.

    Responsibilities:
    - Schedule agents in parallel, sequential or hybrid mode
    - Bound each agent call by the configured timeout
    - Fall back to the highest-weighted agent when every agent fails
    - Hand surviving results to the orchestrator for blending
    - Fan agent streams into one event stream

    A fresh ``AgentRegistry`` is built for every call, so one manager can
    serve concurrent requests.
    """

    def __init__(self, llm: LLMService, stagger_seconds: float = 0.5):
        self.llm = llm
        self.stagger_seconds = stagger_seconds

    # ------------------------------------------------------------------
    # Config helpers
    # ------------------------------------------------------------------

    @staticmethod
    def default_config() -> ExecutionConfig:
        return _default_config()

    @staticmethod
    def validate_config(config: Union[ExecutionConfig, Mapping[str, Any]]) -> bool:
        return _validate_config(config)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def execute(
        self,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
    ) -> CompositeResult:
        """Run ``history`` through the mode named by ``config.execution_mode``."""
        if config.execution_mode == ExecutionMode.SEQUENTIAL:
            return await self.execute_sequential(history, config, credentials)
        if config.execution_mode == ExecutionMode.HYBRID:
            return await self.execute_hybrid(history, config, credentials)
        return await self.execute_parallel(history, config, credentials)

    async def execute_parallel(
        self,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
    ) -> CompositeResult:
        """
        Run every enabled agent concurrently.

        Agent ``i`` starts after ``i * stagger_seconds``. Each call is
        cancelled once it exceeds ``timeout_ms``. Any one success is enough
        to blend.

        Args:
            history: Conversation so far, oldest first.
            config: Execution config.
            credentials: Keys for the enabled agents and the orchestrator.

        Returns:
            CompositeResult with the blended answer.

        Raises:
            NoEnabledAgents, MissingCredential, AllAgentsFailed,
            FallbackExhausted, NoValidResponses
        """
        start_time = time.time()
        registry, agents = self._prepare(config, credentials)

        logger.info(
            "Starting parallel execution",
            agents=[a.specialization.value for a in agents],
            timeout_ms=config.timeout_ms,
        )

        results, errors = await self._run_concurrently(
            agents, history, config, credentials, phase="parallel", stagger=True
        )
        if not results:
            return await self._fallback(registry, history, config, credentials, errors, start_time)
        return await self._blend(results, history, config, credentials, start_time)

    async def execute_sequential(
        self,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
    ) -> CompositeResult:
        """
        Run agents one at a time in registration order.

        Each agent sees the successful results of the agents before it. A
        failed agent is skipped, unless fallback is disabled, in which case
        its ``AgentError`` is raised immediately.
        """
        start_time = time.time()
        registry, agents = self._prepare(config, credentials)

        logger.info(
            "Starting sequential execution",
            agents=[a.specialization.value for a in agents],
        )

        results: List[AgentResult] = []
        errors: List[AgentError] = []
        for agent in agents:
            context = RuntimeContext(
                api_key=credentials.for_agent(agent.specialization),
                previous_results=tuple(results),
                phase="sequential",
            )
            try:
                results.append(await self._run_agent(agent, history, config, context))
            except AgentError as e:
                if not config.fallback_to_single_agent:
                    logger.error("Sequential execution aborted", agent=e.specialization.value, error=e.reason)
                    raise
                logger.warning("Agent skipped", agent=e.specialization.value, error=e.reason)
                errors.append(e)

        if not results:
            return await self._fallback(registry, history, config, credentials, errors, start_time)
        return await self._blend(results, history, config, credentials, start_time)

    async def execute_hybrid(
        self,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
    ) -> CompositeResult:
        """
        Run analytical and factual together, then creative on top of them.

        The creative agent receives the first phase's successes as context.
        A creative failure is not fatal when the first phase produced
        something.
        """
        start_time = time.time()
        registry, agents = self._prepare(config, credentials)

        first = [a for a in agents if a.specialization in HYBRID_FIRST_PHASE]
        second = [a for a in agents if a.specialization in HYBRID_SECOND_PHASE]

        logger.info(
            "Starting hybrid execution",
            first_phase=[a.specialization.value for a in first],
            second_phase=[a.specialization.value for a in second],
        )

        results, errors = await self._run_concurrently(
            first, history, config, credentials, phase="hybrid"
        )

        for agent in second:
            context = RuntimeContext(
                api_key=credentials.for_agent(agent.specialization),
                previous_results=tuple(results),
                phase="hybrid",
            )
            try:
                results.append(await self._run_agent(agent, history, config, context))
            except AgentError as e:
                logger.warning("Agent skipped", agent=e.specialization.value, error=e.reason)
                errors.append(e)

        if not results:
            return await self._fallback(registry, history, config, credentials, errors, start_time)
        return await self._blend(results, history, config, credentials, start_time)

    async def stream_execute(
        self,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
        interleave: bool = False,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream every enabled agent, then the blended answer.

        All agents start at once and every ``agent_start`` is emitted up
        front. By default the remaining agent events are forwarded one agent
        at a time in registration order; with ``interleave=True`` they are
        forwarded as they arrive. Once every agent has completed, the
        results are blended and the answer is emitted as
        ``orchestrator_chunk`` events followed by ``trinity_complete``.

        Args:
            history: Conversation so far, oldest first.
            config: Execution config. ``execution_mode`` is ignored.
            credentials: Keys for the enabled agents and the orchestrator.
            interleave: Forward agent events in arrival order.

        Yields:
            StreamEvent
        """
        start_time = time.time()
        registry, agents = self._prepare(config, credentials)

        shared: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        queues: Dict[AgentSpecialization, "asyncio.Queue[StreamEvent]"] = {
            agent.specialization: shared if interleave else asyncio.Queue()
            for agent in agents
        }

        for agent in agents:
            yield StreamEvent(type=StreamEventType.AGENT_START, specialization=agent.specialization)

        tasks = [
            asyncio.create_task(
                self._produce(agent, history, config, credentials, queues[agent.specialization])
            )
            for agent in agents
        ]

        results: List[AgentResult] = []
        try:
            if interleave:
                remaining = len(agents)
                while remaining:
                    event = await shared.get()
                    if event.type == StreamEventType.AGENT_COMPLETE:
                        remaining -= 1
                        results.append(self._result_from_event(event, config))
                    yield event
            else:
                for agent in agents:
                    queue = queues[agent.specialization]
                    while True:
                        event = await queue.get()
                        if event.type == StreamEventType.AGENT_COMPLETE:
                            results.append(self._result_from_event(event, config))
                            yield event
                            break
                        yield event
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        results.sort(key=lambda r: SPECIALIZATION_ORDER.index(r.specialization))
        succeeded = [r for r in results if not r.failed]
        if succeeded:
            composite = await self._blend(succeeded, history, config, credentials, start_time)
        else:
            errors = [AgentError(r.specialization, r.content or "empty response") for r in results]
            composite = await self._fallback(registry, history, config, credentials, errors, start_time)

        final = composite.final_response
        for offset in range(0, len(final), ORCHESTRATOR_CHUNK_SIZE):
            yield StreamEvent(
                type=StreamEventType.ORCHESTRATOR_CHUNK,
                content=final[:offset + ORCHESTRATOR_CHUNK_SIZE],
                delta=final[offset:offset + ORCHESTRATOR_CHUNK_SIZE],
            )

        yield StreamEvent(
            type=StreamEventType.TRINITY_COMPLETE,
            content=final,
            is_complete=True,
            metadata=composite.to_dict(),
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _prepare(
        self,
        config: ExecutionConfig,
        credentials: Credentials,
    ) -> Tuple[AgentRegistry, List[Agent]]:
        if not config.enabled_specializations():
            raise NoEnabledAgents()
        credentials.require(config)
        registry = AgentRegistry(self.llm)
        return registry, registry.resolve(config)

    async def _run_agent(
        self,
        agent: Agent,
        history: History,
        config: ExecutionConfig,
        context: RuntimeContext,
        delay: float = 0.0,
    ) -> AgentResult:
        """Invoke one agent under the timeout; failed results raise AgentError."""
        if delay:
            await asyncio.sleep(delay)
        try:
            result = await asyncio.wait_for(
                agent.invoke(history, context),
                timeout=config.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise AgentTimeout(agent.specialization, config.timeout_ms) from None
        if result.failed:
            raise AgentError(agent.specialization, result.content or "empty response")
        return result

    async def _run_concurrently(
        self,
        agents: Sequence[Agent],
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
        phase: str,
        stagger: bool = False,
    ) -> Tuple[List[AgentResult], List[AgentError]]:
        """Settle every agent; successes keep registration order."""
        outcomes = await asyncio.gather(
            *[
                self._run_agent(
                    agent,
                    history,
                    config,
                    RuntimeContext(api_key=credentials.for_agent(agent.specialization), phase=phase),
                    delay=index * self.stagger_seconds if stagger else 0.0,
                )
                for index, agent in enumerate(agents)
            ],
            return_exceptions=True,
        )

        results: List[AgentResult] = []
        errors: List[AgentError] = []
        for outcome in outcomes:
            if isinstance(outcome, AgentError):
                logger.warning(
                    "Agent failed",
                    agent=outcome.specialization.value,
                    timeout=isinstance(outcome, AgentTimeout),
                    error=outcome.reason,
                )
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results, errors

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _forward(
        self,
        agent: Agent,
        history: History,
        context: RuntimeContext,
        queue: "asyncio.Queue[StreamEvent]",
    ) -> None:
        async for event in agent.stream(history, context):
            if event.type != StreamEventType.AGENT_START:
                await queue.put(event)

    async def _produce(
        self,
        agent: Agent,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
        queue: "asyncio.Queue[StreamEvent]",
    ) -> None:
        context = RuntimeContext(
            api_key=credentials.for_agent(agent.specialization),
            phase="stream",
        )
        start_time = time.time()
        try:
            await asyncio.wait_for(
                self._forward(agent, history, context, queue),
                timeout=config.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Agent stream timed out",
                agent=agent.specialization.value,
                timeout_ms=config.timeout_ms,
            )
            await queue.put(StreamEvent(
                type=StreamEventType.AGENT_COMPLETE,
                specialization=agent.specialization,
                content=f"Error: {AgentTimeout(agent.specialization, config.timeout_ms)}",
                is_complete=True,
                metadata={
                    "confidence": 0.0,
                    "execution_time_ms": _elapsed_ms(start_time),
                    "token_usage": TokenUsage(),
                    "finish_reason": "error",
                },
            ))

    @staticmethod
    def _result_from_event(event: StreamEvent, config: ExecutionConfig) -> AgentResult:
        agent_config = config.agent(event.specialization)
        metadata = event.metadata or {}
        return AgentResult(
            specialization=event.specialization,
            content=event.content,
            confidence=metadata.get("confidence", 0.0),
            execution_time_ms=metadata.get("execution_time_ms", 0),
            token_usage=metadata.get("token_usage") or TokenUsage(),
            metadata=ResultMetadata(
                model=agent_config.model,
                provider=agent_config.provider,
                temperature=agent_config.temperature,
                finish_reason=metadata.get("finish_reason"),
            ),
        )

    # ------------------------------------------------------------------
    # Blending and fallback
    # ------------------------------------------------------------------

    async def _blend(
        self,
        results: List[AgentResult],
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
        start_time: float,
    ) -> CompositeResult:
        orchestrator = Orchestrator(config.orchestrator, self.llm)
        survivors = orchestrator.filter_valid(orchestrator.resolve_conflicts(results))
        outcome = await orchestrator.blend(
            survivors,
            config.orchestrator.blending_strategy,
            history,
            api_key=credentials.orchestrator_key,
            weights=config.weights(),
        )
        final_response = outcome.content

        total_time = _elapsed_ms(start_time)
        logger.info(
            "Execution complete",
            mode=config.execution_mode.value,
            strategy=outcome.strategy.value,
            degraded=outcome.degraded,
            agents=[r.specialization.value for r in survivors],
            duration_ms=total_time,
        )

        return CompositeResult(
            final_response=final_response,
            agent_results=survivors,
            meta=CompositeMeta(
                blending_strategy=outcome.strategy,
                execution_mode=config.execution_mode,
                total_execution_time_ms=total_time,
                token_usage=TokenUsage.aggregate([r.token_usage for r in survivors]),
                blend_degraded=outcome.degraded,
                answered_by=outcome.answered_by.specialization if outcome.answered_by else None,
            ),
            attribution=orchestrator.attribute(survivors, final_response),
        )

    @staticmethod
    def select_fallback(config: ExecutionConfig) -> Optional[AgentSpecialization]:
        """Highest-weighted enabled specialization; ties go to registration order."""
        best: Optional[AgentSpecialization] = None
        for spec in config.enabled_specializations():
            if best is None or config.agent(spec).weight > config.agent(best).weight:
                best = spec
        return best

    async def _fallback(
        self,
        registry: AgentRegistry,
        history: History,
        config: ExecutionConfig,
        credentials: Credentials,
        errors: List[AgentError],
        start_time: float,
    ) -> CompositeResult:
        if not config.fallback_to_single_agent:
            logger.error("All agents failed", errors=[str(e) for e in errors])
            raise AllAgentsFailed(errors)

        specialization = self.select_fallback(config)
        agent = registry.get(specialization)
        logger.warning(
            "All agents failed, falling back to single agent",
            agent=specialization.value,
            failures=len(errors),
        )

        context = RuntimeContext(api_key=credentials.for_agent(specialization), phase="fallback")
        try:
            result = await self._run_agent(agent, history, config, context)
        except AgentError as e:
            logger.error("Fallback failed", agent=specialization.value, error=e.reason)
            raise FallbackExhausted(specialization, e.reason) from e

        return CompositeResult(
            final_response=result.content,
            agent_results=[result],
            meta=CompositeMeta(
                blending_strategy=BlendingStrategy.BEST_OF_THREE,
                execution_mode=config.execution_mode,
                total_execution_time_ms=_elapsed_ms(start_time),
                token_usage=result.token_usage,
                fallback_used=True,
                answered_by=specialization,
            ),
            attribution={specialization: Attribution(1.0, [FALLBACK_INSIGHT])},
        )
