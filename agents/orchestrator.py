import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Set, Tuple

import structlog

from core.errors import MissingCredential, NoValidResponses
from core.execution_config import OrchestratorConfig
from core.llm import LLMOptions, LLMService
from core.types import (
    AgentResult,
    AgentSpecialization,
    Attribution,
    BlendingStrategy,
    clamp,
)

from . import SPECIALIZATION_RULES

logger = structlog.get_logger()


def _pair(positive: str, negative: str) -> Tuple[Pattern, Pattern]:
    return re.compile(positive), re.compile(negative)


# Opposing claims. Matched case-insensitively on word boundaries; the
# positive side of a negated pair excludes its negated form.
CONTRADICTION_PAIRS: Tuple[Tuple[Pattern, Pattern], ...] = (
    _pair(r"\byes\b", r"\bno\b"),
    _pair(r"\btrue\b", r"\bfalse\b"),
    _pair(r"\bincrease", r"\bdecrease"),
    _pair(r"\bbetter\b", r"\bworse\b"),
    _pair(r"\bshould\b(?!\s+not\b)", r"\bshould\s+not\b"),
    _pair(r"(?<!not )\brecommend", r"\bnot\s+recommend"),
)

CONFLICT_PENALTY = 0.15
CONFIDENCE_FLOOR = 0.1

INSIGHT_MARKERS = ("important", "key", "crucial", "significant", "notable")
INSIGHT_PREFIXES = ("This", "The main")
MAX_INSIGHTS = 3


def word_set(text: str) -> Set[str]:
    return set(text.lower().split())


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def _last_user_message(history: Sequence[Mapping[str, str]]) -> str:
    for message in reversed(history):
        if message.get("role") == "user":
            return message.get("content", "")
    return history[-1].get("content", "Unknown") if history else "Unknown"


def _weighted_merge_prompt(
    results: List[AgentResult],
    question: str,
    weights: Mapping[AgentSpecialization, float],
) -> Tuple[str, str]:
    responses = "\n".join(
        f"""
**{r.specialization.value.upper()} Agent** (Confidence: {r.confidence * 100:.1f}%, Weight: {weights.get(r.specialization, 0) * 100:.0f}%):
{r.content}
"""
        for r in results
    )
    system = f"""You are an expert orchestrator combining insights from specialized AI agents.

Your task is to merge their responses into one comprehensive answer that:
1. Preserves the best insights from each agent
2. Respects their confidence levels and specializations
3. Creates a flowing, coherent response
4. Weights contributions according to each agent's weight

Agent Specializations:
- Analytical: Logic, reasoning, data analysis, systematic problem-solving
- Creative: Innovation, alternative perspectives, imaginative solutions
- Factual: Accuracy, verification, reliable information, source citation

Original Question: {question}

Agent Responses:
{responses}

Blend these responses into a single, comprehensive answer that leverages each agent's strengths."""
    return system, "Please create a unified response that blends the insights from all agents."


def _synthesis_prompt(
    results: List[AgentResult],
    question: str,
    weights: Mapping[AgentSpecialization, float],
) -> Tuple[str, str]:
    insights = "\n".join(
        f"\n[{r.specialization.value.upper()}] (Confidence: {r.confidence * 100:.1f}%) {r.content}\n"
        for r in results
    )
    system = f"""You are a master synthesizer creating a new, unified response that incorporates the best elements from specialized AI agents.

Your goal is to create something greater than the sum of its parts by:
1. Identifying complementary insights across agents
2. Bridging connections between different perspectives
3. Creating novel insights that emerge from the combination
4. Maintaining coherence while adding synthesis value

Do not simply concatenate or summarize - create a genuinely synthesized response.

Original Question: {question}

Agent Insights:
{insights}

Synthesize these into a cohesive, insightful response that creates new value."""
    return system, "Create a synthesized response that goes beyond simple combination."


def _hierarchical_prompt(
    results: List[AgentResult],
    question: str,
    weights: Mapping[AgentSpecialization, float],
) -> Tuple[str, str]:
    responses = "\n".join(
        f"\n[{r.specialization.value.upper()}] (Confidence: {r.confidence * 100:.1f}%): {r.content}\n"
        for r in results
    )
    system = f"""You are organizing insights from specialized agents into a structured, hierarchical response.

Structure your response with clear sections that highlight each agent's contribution:

**Analysis & Logic** (from Analytical Agent)
**Creative Perspectives** (from Creative Agent)
**Facts & Verification** (from Factual Agent)
**Integrated Conclusion** (your synthesis)

Omit the section of any agent that did not respond. Make each section distinct but ensure the overall response flows logically.

Original Question: {question}

Agent Responses:
{responses}

Create a well-structured response with clear sections for each perspective."""
    return system, "Create a hierarchically structured response with distinct sections."


PromptBuilder = Callable[
    [List[AgentResult], str, Mapping[AgentSpecialization, float]], Tuple[str, str]
]

PROMPT_BUILDERS: Dict[BlendingStrategy, PromptBuilder] = {
    BlendingStrategy.WEIGHTED_MERGE: _weighted_merge_prompt,
    BlendingStrategy.SYNTHESIS: _synthesis_prompt,
    BlendingStrategy.HIERARCHICAL: _hierarchical_prompt,
}


@dataclass
class BlendOutcome:
    """Final text plus how it was produced."""
    content: str
    strategy: BlendingStrategy
    answered_by: Optional[AgentResult] = None
    degraded: bool = False


class Orchestrator:
    """
    Orchestrator: merges agent results into one answer.

    Responsibilities:
    - Filter out failed or near-zero-confidence results
    - Lower the confidence of results that contradict each other
    - Rank results for best_of_three selection
    - Blend via an extra LLM call (weighted_merge, synthesis, hierarchical)
    - Estimate each agent's contribution to the final text
    """

    def __init__(self, config: OrchestratorConfig, llm: LLMService):
        self.config = config
        self.llm = llm

    # ------------------------------------------------------------------
    # Filtering and conflicts
    # ------------------------------------------------------------------

    @staticmethod
    def filter_valid(results: Sequence[AgentResult]) -> List[AgentResult]:
        return [
            r for r in results
            if r.content
            and not r.content.startswith("Error:")
            and r.confidence > CONFIDENCE_FLOOR
        ]

    @staticmethod
    def count_conflicts(result: AgentResult, results: Sequence[AgentResult]) -> int:
        text = result.content.lower()
        conflicts = 0
        for other in results:
            if other.specialization == result.specialization:
                continue
            other_text = other.content.lower()
            for positive, negative in CONTRADICTION_PAIRS:
                if positive.search(text) and negative.search(other_text):
                    conflicts += 1
                if negative.search(text) and positive.search(other_text):
                    conflicts += 1
        return conflicts

    def resolve_conflicts(self, results: Sequence[AgentResult]) -> List[AgentResult]:
        """Return new results with confidence lowered per detected contradiction."""
        resolved = []
        for result in results:
            conflicts = self.count_conflicts(result, results)
            if not conflicts:
                resolved.append(result)
                continue
            floor = min(CONFIDENCE_FLOOR, result.confidence)
            adjusted = max(floor, result.confidence - conflicts * CONFLICT_PENALTY)
            logger.debug(
                "Conflicts detected",
                agent=result.specialization.value,
                conflicts=conflicts,
                confidence=round(adjusted, 3),
            )
            resolved.append(result.with_confidence(adjusted))
        return resolved

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    @staticmethod
    def score(result: AgentResult) -> float:
        score = result.confidence * 0.4

        if len(result.content) > 100:
            score += 0.1
        if len(result.content) > 500:
            score += 0.1

        if result.execution_time_ms < 5000:
            score += 0.1
        elif result.execution_time_ms > 30000:
            score -= 0.1

        if result.metadata.finish_reason == "stop":
            score += 0.1
        elif result.metadata.finish_reason == "length":
            score -= 0.05

        if SPECIALIZATION_RULES[result.specialization].has_keyword(result.content):
            score += 0.1

        return clamp(score)

    def rank_best(self, results: Sequence[AgentResult]) -> AgentResult:
        """Highest-scoring result; the earliest wins a tie."""
        if not results:
            raise NoValidResponses("No responses to select from")
        best = results[0]
        best_score = self.score(best)
        for result in results[1:]:
            score = self.score(result)
            if score > best_score:
                best, best_score = result, score
        return best

    # ------------------------------------------------------------------
    # Blending
    # ------------------------------------------------------------------

    async def blend(
        self,
        results: Sequence[AgentResult],
        strategy: BlendingStrategy,
        history: Sequence[Mapping[str, str]],
        api_key: Optional[str] = None,
        weights: Optional[Mapping[AgentSpecialization, float]] = None,
    ) -> BlendOutcome:
        """
        Merge results into the final answer.

        Args:
            results: Agent results, usually after ``resolve_conflicts``.
            strategy: Blending strategy.
            history: Original conversation; the last user message is the question.
            api_key: Credential for the orchestrator's provider.
            weights: Agent weights shown to the weighted_merge prompt.

        Returns:
            BlendOutcome with the final text. When the orchestrator call
            fails or comes back empty, the best-ranked result is used, the
            strategy is reported as best_of_three and ``degraded`` is set.

        Raises:
            NoValidResponses: nothing survived filtering.
            MissingCredential: an LLM strategy was requested without a key.
        """
        valid = self.filter_valid(results)
        if not valid:
            raise NoValidResponses()

        strategy = BlendingStrategy(strategy)
        if len(valid) == 1:
            return BlendOutcome(valid[0].content, strategy, answered_by=valid[0])

        if strategy == BlendingStrategy.BEST_OF_THREE:
            best = self.rank_best(valid)
            return BlendOutcome(best.content, strategy, answered_by=best)

        if not api_key:
            raise MissingCredential([self.config.provider])

        system_prompt, instruction = PROMPT_BUILDERS[strategy](
            valid, _last_user_message(history), weights or {}
        )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": instruction},
        ]

        try:
            response = await self.llm.invoke(
                messages,
                LLMOptions(
                    model=self.config.model,
                    provider=self.config.provider,
                    api_key=api_key,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                ),
            )
        except Exception as e:
            logger.warning(
                "Orchestrator call failed, using best-ranked response",
                strategy=strategy.value,
                provider=self.config.provider,
                error=str(e),
            )
            return self._degraded(valid)

        if not response.content.strip():
            logger.warning("Orchestrator returned empty text, using best-ranked response")
            return self._degraded(valid)

        logger.info(
            "Responses blended",
            strategy=strategy.value,
            agents=[r.specialization.value for r in valid],
            tokens=response.usage.total_tokens,
        )
        return BlendOutcome(response.content, strategy)

    def _degraded(self, valid: Sequence[AgentResult]) -> BlendOutcome:
        best = self.rank_best(valid)
        return BlendOutcome(
            best.content,
            BlendingStrategy.BEST_OF_THREE,
            answered_by=best,
            degraded=True,
        )

    # ------------------------------------------------------------------
    # Attribution
    # ------------------------------------------------------------------

    @staticmethod
    def uniqueness(result: AgentResult, results: Sequence[AgentResult]) -> float:
        words = word_set(result.content)
        if not words:
            return 0.0
        other_words: Set[str] = set()
        for other in results:
            if other.specialization != result.specialization:
                other_words |= word_set(other.content)
        return len(words - other_words) / len(words)

    @staticmethod
    def key_insights(result: AgentResult) -> List[str]:
        rules = SPECIALIZATION_RULES[result.specialization]
        insights = []
        for sentence in re.split(r"[.!?]+", result.content):
            trimmed = sentence.strip()
            if len(trimmed) <= 20:
                continue
            if (
                any(marker in trimmed for marker in INSIGHT_MARKERS)
                or trimmed.startswith(INSIGHT_PREFIXES)
                or rules.has_keyword(trimmed)
            ):
                insights.append(trimmed)
            if len(insights) == MAX_INSIGHTS:
                break
        return insights

    def attribute(
        self,
        results: Sequence[AgentResult],
        final_text: str,
    ) -> Dict[AgentSpecialization, Attribution]:
        final_words = word_set(final_text)
        attribution = {}
        for result in results:
            contribution = (
                0.6 * result.confidence
                + 0.3 * self.uniqueness(result, results)
                + 0.1 * jaccard(word_set(result.content), final_words)
            )
            attribution[result.specialization] = Attribution(
                contribution_percentage=clamp(contribution),
                key_insights=self.key_insights(result),
            )
        return attribution
