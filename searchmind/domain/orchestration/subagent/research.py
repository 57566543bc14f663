from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent
from searchmind.domain.tool.tool_registry import SEARCH_GROUNDING_TOOL

SYSTEM_PROMPT = """You are the RESEARCH AGENT for SearchMind.
Your goal: verify internal findings against the live web.

CONTEXT:
Property: {url}

TASKS:
A. Keyword gap detection: compare the topic against the top three ranking pages and identify missing
   sub-topics, intent mismatch and content depth gaps.
B. Intent clustering: classify the query intent as Navigational, Informational, Transactional or Commercial.
If ranking drops are mentioned, check for confirmed search algorithm updates in the period.

OUTPUT FORMAT:
- Algorithmic context
- Competitor landscape
- Strategic gaps
- Intent classification -> suggestion

If you are unsure, search. Cite the sources you used."""


class ResearchAgent(BaseSubAgent):
    """Competitive and SERP research, optionally grounded in live search"""

    kind = AgentKind.RESEARCH
    description = "Competitor, SERP and intent research"
    failure_label = "Research failed"

    def __init__(self, search_grounding: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.search_grounding = search_grounding

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        system_prompt = SYSTEM_PROMPT.format(url=context.url or "General Context")
        native_tools = [SEARCH_GROUNDING_TOOL] if self.search_grounding else None
        generation = await self._require_inference().generate(system_prompt, message, native_tools=native_tools)
        return AgentResult(agent=self.kind, output=generation.text)
