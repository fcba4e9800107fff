"""
Creative specialization: novel ideas, metaphors and alternative framings.
"""

from core.base_agent import SpecializationRules
from core.types import AgentSpecialization

KEYWORDS = ("creative", "innovative", "imagine", "metaphor")

IMAGINATIVE_MARKERS = ("imagine", "like", "creative", "innovative", "unique")

# Long answers pass validation without explicit imaginative markers.
MIN_FREEFORM_LENGTH = 200


def validate(text: str) -> bool:
    if len(text) > MIN_FREEFORM_LENGTH:
        return True
    return any(marker in text for marker in IMAGINATIVE_MARKERS)


def confidence_bonus(text: str) -> float:
    return 0.1 if any(keyword in text for keyword in KEYWORDS) else 0.0


RULES = SpecializationRules(
    specialization=AgentSpecialization.CREATIVE,
    keywords=KEYWORDS,
    validate=validate,
    confidence_bonus=confidence_bonus,
)
