from typing import Dict

from core.base_agent import SpecializationRules
from core.types import AgentSpecialization

from . import analytical, creative, factual

SPECIALIZATION_RULES: Dict[AgentSpecialization, SpecializationRules] = {
    AgentSpecialization.ANALYTICAL: analytical.RULES,
    AgentSpecialization.CREATIVE: creative.RULES,
    AgentSpecialization.FACTUAL: factual.RULES,
}

if set(SPECIALIZATION_RULES) != set(AgentSpecialization):
    raise RuntimeError("every specialization needs a rules entry")

from .registry import AgentRegistry, create_agent  # noqa: E402
from .orchestrator import Orchestrator  # noqa: E402
from .execution_manager import ExecutionManager  # noqa: E402

__all__ = [
    "SPECIALIZATION_RULES",
    "AgentRegistry",
    "create_agent",
    "Orchestrator",
    "ExecutionManager",
]
