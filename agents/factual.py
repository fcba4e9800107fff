"""
Factual specialization: verifiable claims, sources, no speculation.

Speculative phrasing is only acceptable when the answer also points at
evidence (citations, studies, data).
"""

from core.base_agent import SpecializationRules
from core.types import AgentSpecialization

KEYWORDS = ("source", "research", "study", "fact")

UNCERTAINTY_MARKERS = ("might", "could be")

SPECULATION_MARKERS = ("I think", "probably", "might be", "seems like")

CITATION_MARKERS = ("according to", "research shows", "data indicates", "studies")


def validate(text: str) -> bool:
    speculative = any(marker in text for marker in SPECULATION_MARKERS)
    cited = any(marker in text for marker in CITATION_MARKERS)
    return not speculative or cited


def confidence_bonus(text: str) -> float:
    bonus = 0.0
    if any(keyword in text for keyword in KEYWORDS):
        bonus += 0.1
    if any(marker in text for marker in UNCERTAINTY_MARKERS):
        bonus -= 0.1
    return bonus


RULES = SpecializationRules(
    specialization=AgentSpecialization.FACTUAL,
    keywords=KEYWORDS,
    validate=validate,
    confidence_bonus=confidence_bonus,
)
