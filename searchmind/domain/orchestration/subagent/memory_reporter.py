from searchmind.domain.context.memory.memory_store import MemoryStore
from searchmind.domain.context.memory.skill_library import SkillLibrary
from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent

RECENT_SKILLS = 5

SYSTEM_PROMPT = """You are the MEMORY AGENT.
Your goal: report on the institutional knowledge of SearchMind.

STATS:
- Total skills learned: {skill_count}
- Total memories stored: {memory_count}

RECENTLY PROMOTED SKILLS:
{skills}

CAPABILITIES:
1. Summarize learnings: explain which strategies are working best.
2. Consolidation status: report how much knowledge has been processed.

If the user asks "What have you learned?", check the skills above and summarize the most successful patterns."""


class MemoryReporterAgent(BaseSubAgent):
    """Answers "what have we learned" from skill and memory statistics"""

    kind = AgentKind.MEMORY
    description = "Institutional memory and promoted strategies"
    failure_label = "Memory analysis failed"

    def __init__(self, memory_store: MemoryStore, skill_library: SkillLibrary, **kwargs):
        super().__init__(**kwargs)
        self.memory_store = memory_store
        self.skill_library = skill_library

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        skill_count = await self.skill_library.count(context.property_id)
        memory_count = await self.memory_store.count(context.property_id)
        skills = await self.skill_library.recent(RECENT_SKILLS, context.property_id)

        listing = "\n".join(
            f"- [{s.strategy_name}]: {s.description} (Success Rate: {s.success_rate:.2f})" for s in skills
        ) or "None yet."
        system_prompt = SYSTEM_PROMPT.format(skill_count=skill_count, memory_count=memory_count, skills=listing)
        generation = await self._require_inference().generate(system_prompt, message)
        return AgentResult(
            agent=self.kind,
            output=generation.text,
            data={
                "skill_count": skill_count,
                "memory_count": memory_count,
                "recent_skills": [s.strategy_name for s in skills],
            },
        )
