from typing import Dict, List, Optional

import structlog

from core.base_agent import Agent
from core.execution_config import AgentConfig, ExecutionConfig
from core.llm import LLMService
from core.types import AgentSpecialization, SPECIALIZATION_ORDER

from . import SPECIALIZATION_RULES

logger = structlog.get_logger()


def create_agent(config: AgentConfig, llm: LLMService) -> Agent:
    """Build an agent wired to its specialization's rules."""
    return Agent(config, llm, SPECIALIZATION_RULES[config.specialization])


class AgentRegistry:
    """
    Specialization -> Agent cache for a single top-level request.

    Agents are reused across calls on the same registry with their config
    replaced in place. A registry must not be shared between concurrent,
    unrelated requests; the execution manager creates one per call.
    """

    def __init__(self, llm: LLMService):
        self.llm = llm
        self._agents: Dict[AgentSpecialization, Agent] = {}

    def resolve(self, config: ExecutionConfig) -> List[Agent]:
        """Return live agents for every enabled specialization, in registration order."""
        agents = []
        for specialization in SPECIALIZATION_ORDER:
            agent_config = config.agent(specialization)
            if not agent_config.enabled:
                continue

            agent = self._agents.get(specialization)
            if agent is None:
                agent = create_agent(agent_config, self.llm)
                self._agents[specialization] = agent
                logger.debug("Agent created", agent=specialization.value, model=agent_config.model)
            else:
                agent.update_config(agent_config)
            agents.append(agent)
        return agents

    def get(self, specialization: AgentSpecialization) -> Optional[Agent]:
        return self._agents.get(specialization)

    def __len__(self) -> int:
        return len(self._agents)
