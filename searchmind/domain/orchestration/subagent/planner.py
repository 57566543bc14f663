import json

from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent

DEFAULT_CONSTRAINTS = {
    "hoursPerWeek": 5,
    "teamSize": "Solo",
    "skillLevel": "Intermediate",
}

SYSTEM_PROMPT = """You are the PLANNER AGENT for SearchMind.
Your goal: turn findings into prioritized, resource-aware plans.

CONTEXT:
Property: {url}
Findings: {findings}
Constraints: {constraints}

CAPABILITIES:
1. Six-month roadmap: technical debt (month 1), content gaps (months 2-3), authority (months 4-6).
2. Weekly action plan: never assign more than {hours} hours; estimate time per task.
3. Dependencies: no content creation while critical indexing errors exist; no link building while content is thin.

OUTPUT FORMAT:
## Strategic Roadmap
## Weekly Action Plan (table: Task | Priority | Est. Time | Reason)
## Resource Check (total estimated time / {hours} hours)"""


class PlannerAgent(BaseSubAgent):
    """Roadmaps and weekly plans bounded by the team's capacity"""

    kind = AgentKind.PLANNER
    description = "Roadmaps and weekly action plans"
    failure_label = "Planning failed"
    action_type = "roadmap_planning"

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        constraints = {**DEFAULT_CONSTRAINTS, **context.constraints}
        findings = {**context.analysis, **context.diagnostics}
        system_prompt = SYSTEM_PROMPT.format(
            url=context.url or "General Property",
            findings=json.dumps(findings) if findings else "No previous analysis provided.",
            constraints=json.dumps(constraints),
            hours=constraints["hoursPerWeek"],
        )
        generation = await self._require_inference().generate(system_prompt, message)
        return AgentResult(agent=self.kind, output=generation.text, data={"constraints": constraints})
