import json

from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent

SYSTEM_PROMPT = """You are the OPTIMIZER AGENT for SearchMind.
Your goal: generate copy-paste-ready technical fixes and content optimizations.

CONTEXT:
Property: {url}
Diagnostics: {diagnostics}
Analysis: {analysis}

CAPABILITIES:
1. On-page: title tags of 50-60 characters containing the primary keyword; meta descriptions of
   150-160 characters in active voice with a call to action. Show **Before** and **After**.
2. Structured data: JSON-LD for the content type (Article, Product, FAQ). Output only the <script> block.
3. Internal linking: suggest 3-5 anchors; when target URLs are unknown, name the type of page to link to.

Always use code blocks for schema and meta tags. Be concise. "Fix this page" means all three capabilities."""


class OptimizerAgent(BaseSubAgent):
    """Generates on-page, schema and internal-linking fixes"""

    kind = AgentKind.OPTIMIZER
    description = "Title, meta, schema and internal link fixes"
    failure_label = "Optimization failed"
    action_type = "onpage_optimization"

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        system_prompt = SYSTEM_PROMPT.format(
            url=context.url or "General Property",
            diagnostics=json.dumps(context.diagnostics) if context.diagnostics else "No technical issues reported.",
            analysis=json.dumps(context.analysis) if context.analysis else "No performance data available.",
        )
        generation = await self._require_inference().generate(system_prompt, message)
        return AgentResult(agent=self.kind, output=generation.text)
