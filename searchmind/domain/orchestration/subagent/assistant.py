from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent

GREETING = "How can I help you with your SEO today?"


class AssistantAgent(BaseSubAgent):
    """Handles greetings and general chat without an inference call"""

    kind = AgentKind.ASSISTANT
    description = "Greetings and general chat"

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        return AgentResult(agent=self.kind, output=GREETING)
