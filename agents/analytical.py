"""
Analytical specialization: logic, structure and evidence-based reasoning.

A valid analytical answer shows visible structure (bullets, numbering or
explicit reasoning connectives).
"""

from core.base_agent import SpecializationRules
from core.types import AgentSpecialization

KEYWORDS = ("data", "analysis", "pattern", "conclude")

STRUCTURE_MARKERS = ("•", "-", "1.", "firstly", "therefore", "analysis")


def validate(text: str) -> bool:
    return any(marker in text for marker in STRUCTURE_MARKERS)


def confidence_bonus(text: str) -> float:
    return 0.1 if any(keyword in text for keyword in KEYWORDS) else 0.0


RULES = SpecializationRules(
    specialization=AgentSpecialization.ANALYTICAL,
    keywords=KEYWORDS,
    validate=validate,
    confidence_bonus=confidence_bonus,
)
