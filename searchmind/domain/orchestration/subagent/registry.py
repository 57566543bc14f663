from typing import Dict, Iterable, List

from searchmind.domain.errors import UnknownAgentError
from searchmind.domain.models.agent_state import AgentKind
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent


class AgentRegistry:
    """Closed mapping from agent kind to its implementation"""

    def __init__(self, agents: Iterable[BaseSubAgent] = ()):
        self.agents: Dict[AgentKind, BaseSubAgent] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: BaseSubAgent) -> None:
        self.agents[agent.kind] = agent

    def get(self, kind) -> BaseSubAgent:
        """Look up an agent; an unregistered kind is a fatal configuration error"""
        try:
            return self.agents[AgentKind(kind)]
        except (KeyError, ValueError):
            raise UnknownAgentError(getattr(kind, "value", str(kind))) from None

    def validate(self, kinds: Iterable) -> None:
        for kind in kinds:
            self.get(kind)

    def kinds(self) -> List[AgentKind]:
        return list(self.agents)
