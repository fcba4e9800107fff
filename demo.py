#!/usr/bin/env python3
"""
Demo script for the Trinity orchestrator.

Runs the three agents and the orchestrator on one question without the API
server. With no provider key (or with --mock) a canned LLM service answers.

Usage:
    python demo.py "How should a small team adopt code review?"
    python demo.py --mode sequential --strategy hierarchical "..."
    python demo.py --stream --interleave "..."
    python demo.py --preset brainstorming --mock "..."
"""

import asyncio
import argparse
from pathlib import Path
from typing import AsyncIterator, Dict, List

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from agents import ExecutionManager  # noqa: E402
from config import Config  # noqa: E402
from core.credentials import Credentials, EnvCredentialResolver, resolve_credentials  # noqa: E402
from core.errors import TrinityError  # noqa: E402
from core.llm import LLMOptions, LLMResponse, LLMStreamChunk, ProviderLLMService  # noqa: E402
from core.logging_config import configure_logging  # noqa: E402
from core.presets import TRINITY_PRESETS, build_execution_config  # noqa: E402
from core.types import BlendingStrategy, ExecutionMode, StreamEventType, TokenUsage  # noqa: E402


MOCK_RESPONSES: Dict[str, str] = {
    "analytical": (
        "Analysis of the question breaks into three parts. Firstly, the data on review "
        "latency shows a clear pattern: small, frequent changes are reviewed faster. "
        "Secondly, ownership rules reduce idle reviews. Therefore the key step is to "
        "limit change size before adding process. We can conclude that measurement "
        "should come first."
    ),
    "creative": (
        "Imagine code review as a writers' room rather than an exam. Each change is a "
        "draft read aloud, and the most innovative teams treat comments like a jam "
        "session: quick, playful, unique to the piece. A creative twist is to rotate "
        "a 'devil's editor' who argues for the opposite design every week."
    ),
    "factual": (
        "Research on modern code review, including a widely cited study at Microsoft, "
        "found that the main benefit is knowledge transfer rather than defect finding. "
        "According to published industry surveys, reviews of under 400 lines catch "
        "most issues. These are established facts from peer-reviewed sources."
    ),
}

MOCK_BLEND = (
    "Start small and measure. Keep changes short so reviews stay fast, rotate "
    "reviewers so knowledge spreads, and treat each review as a conversation "
    "rather than a gate. Research shows the main payoff is shared understanding, "
    "so optimise for that first and add process only where the data shows delays."
)


class MockLLMService:
    """Canned LLM service for running the demo without API keys."""

    @staticmethod
    def _answer(messages: List[Dict[str, str]]) -> str:
        system = messages[0]["content"] if messages else ""
        for specialization, text in MOCK_RESPONSES.items():
            if f"You are an {specialization} agent" in system or f"You are a {specialization} agent" in system:
                return text
        return MOCK_BLEND

    async def invoke(self, messages: List[Dict[str, str]], options: LLMOptions) -> LLMResponse:
        await asyncio.sleep(0.2)
        content = self._answer(messages)
        words = len(content.split())
        return LLMResponse(
            content=content,
            model=options.model,
            provider=options.provider,
            usage=TokenUsage(120, words, 120 + words),
            finish_reason="stop",
        )

    async def stream(
        self, messages: List[Dict[str, str]], options: LLMOptions
    ) -> AsyncIterator[LLMStreamChunk]:
        content = ""
        for word in self._answer(messages).split(" "):
            await asyncio.sleep(0.02)
            delta = word if not content else " " + word
            content += delta
            yield LLMStreamChunk(delta=delta, content=content, is_complete=False)
        words = len(content.split())
        yield LLMStreamChunk(
            delta="",
            content=content,
            is_complete=True,
            usage=TokenUsage(120, words, 120 + words),
            finish_reason="stop",
        )


async def run_demo(args: argparse.Namespace):
    """Run the Trinity demo."""
    app_config = Config.from_env()
    configure_logging(args.log_level or app_config.log_level)

    print("\n" + "=" * 60)
    print("TRINITY MULTI-AGENT ORCHESTRATOR DEMO")
    print("=" * 60)
    print(f"\nQuestion: {args.question}\n")

    custom = {}
    if args.strategy:
        custom["orchestrator"] = {"blending_strategy": args.strategy}
    execution_config = build_execution_config(
        execution_mode=ExecutionMode(args.mode) if args.mode else None,
        preset=args.preset,
        custom=custom,
    )

    use_mock = args.mock or not app_config.validate()
    if use_mock:
        print("Using mock LLM service (no API key found or --mock given)\n")
        llm = MockLLMService()
        credentials = Credentials(
            agent_keys={spec: "mock" for spec in execution_config.enabled_specializations()},
            orchestrator_key="mock",
        )
        stagger = 0.0
    else:
        print(f"Using providers: {', '.join(app_config.configured_providers())}\n")
        llm = ProviderLLMService()
        resolver = EnvCredentialResolver(app_config.provider_keys())
        credentials = resolve_credentials(resolver, "demo", execution_config)
        stagger = app_config.stagger_seconds

    manager = ExecutionManager(llm, stagger_seconds=stagger)
    history = [{"role": "user", "content": args.question}]

    print(f"Mode: {execution_config.execution_mode.value}")
    print(f"Strategy: {execution_config.orchestrator.blending_strategy.value}")
    print(f"Agents: {', '.join(s.value for s in execution_config.enabled_specializations())}\n")
    print("-" * 60)

    if args.stream:
        current = None
        async for event in manager.stream_execute(
            history, execution_config, credentials, interleave=args.interleave
        ):
            if event.type == StreamEventType.AGENT_START:
                print(f"[{event.specialization.value}] started")
            elif event.type == StreamEventType.AGENT_CHUNK:
                if args.interleave or current != event.specialization:
                    print(f"\n[{event.specialization.value}] ", end="")
                    current = event.specialization
                print(event.delta, end="", flush=True)
            elif event.type == StreamEventType.AGENT_COMPLETE:
                confidence = (event.metadata or {}).get("confidence", 0.0)
                print(f"\n[{event.specialization.value}] done, confidence {confidence * 100:.0f}%")
                current = None
            elif event.type == StreamEventType.ORCHESTRATOR_CHUNK:
                if current != "orchestrator":
                    print("\n[orchestrator] ", end="")
                    current = "orchestrator"
                print(event.delta, end="", flush=True)
            elif event.type == StreamEventType.TRINITY_COMPLETE:
                meta = (event.metadata or {}).get("meta", {})
                print(f"\n\nTotal time: {meta.get('total_execution_time_ms', 0)}ms")
        return

    result = await manager.execute(history, execution_config, credentials)

    print("\nAGENT RESULTS\n")
    for agent_result in result.agent_results:
        conf_bar = "#" * int(agent_result.confidence * 10) + "." * (10 - int(agent_result.confidence * 10))
        print(f"  {agent_result.specialization.value:<11} [{conf_bar}] {agent_result.confidence * 100:.0f}%"
              f"  {agent_result.execution_time_ms}ms")

    print("\nFINAL RESPONSE\n")
    print(result.final_response)

    print("\nATTRIBUTION\n")
    for spec, attribution in result.attribution.items():
        print(f"  {spec.value}: {attribution.contribution_percentage * 100:.0f}%")
        for insight in attribution.key_insights:
            print(f"    - {insight}")

    meta = result.meta
    print(f"\nTokens: {meta.token_usage.total_tokens}  Time: {meta.total_execution_time_ms}ms"
          f"  Fallback: {'yes' if meta.fallback_used else 'no'}"
          f"  Strategy: {meta.blending_strategy.value}{' (degraded)' if meta.blend_degraded else ''}")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60 + "\n")


def main():
    parser = argparse.ArgumentParser(description="Trinity Multi-Agent Orchestrator Demo")
    parser.add_argument("question", nargs="?", default="How should a small team adopt code review?",
                        help="Question to put to the agents")
    parser.add_argument("--mode", choices=[m.value for m in ExecutionMode], help="Execution mode")
    parser.add_argument("--strategy", choices=[s.value for s in BlendingStrategy], help="Blending strategy")
    parser.add_argument("--preset", choices=sorted(TRINITY_PRESETS), help="Configuration preset")
    parser.add_argument("--stream", action="store_true", help="Stream events instead of waiting for the result")
    parser.add_argument("--interleave", action="store_true", help="With --stream, interleave agent output")
    parser.add_argument("--mock", action="store_true", help="Use mock LLM (no API key needed)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    args = parser.parse_args()

    try:
        asyncio.run(run_demo(args))
    except TrinityError as e:
        print(f"Error: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
