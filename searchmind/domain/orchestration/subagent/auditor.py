from typing import Optional

from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent
from searchmind.domain.tool.tool_registry import INSPECT_URL

SYSTEM_PROMPT = """You are the TECHNICAL AUDITOR for SearchMind.
Your goal: diagnose indexing, connectivity and compliance issues using live Search Console data.

CONTEXT:
Property: {url}

DIAGNOSTIC PROTOCOLS:
1. Indexing (via inspect_url): a FAIL verdict is an immediate red flag. Distinguish
   "Crawled - currently not indexed" (quality) from "Discovered - currently not indexed" (crawl budget).
   Soft 404 means thin or error-like content. "Blocked by robots.txt" means review robots.txt rules.
2. Canonicalization: if the user-declared and Google-selected canonicals differ, report a "Canonical schism".
3. Mobile usability: if the verdict is FAIL, list the specific issues.

Use inspect_url for URLs the user mentions. For a general "why isn't my site indexing" question,
start with the homepage or ask for a specific URL. Be precise and actionable.
{diagnostics}"""


class AuditorAgent(BaseSubAgent):
    """Technical indexing audits through live URL inspection"""

    kind = AgentKind.AUDITOR
    description = "Indexing, canonical and mobile usability diagnostics"
    failure_label = "Audit failed"
    action_type = "technical_audit"

    def missing_context(self, context: AgentContext) -> Optional[str]:
        if not context.property_id or not context.user_id:
            return (
                "I need a selected property and authentication context to perform an audit. "
                "Please select a property first."
            )
        return None

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        diagnostics = f"\nPRIOR DIAGNOSTICS: {context.diagnostics}" if context.diagnostics else ""
        system_prompt = SYSTEM_PROMPT.format(url=context.url or context.property_id, diagnostics=diagnostics)
        generation = await self._require_inference().generate(system_prompt, message, tools=self.tools(context))

        inspections = [
            step["result"] for step in generation.steps
            if step["tool"] == INSPECT_URL and isinstance(step.get("result"), dict) and "interpretation" in step["result"]
        ]
        return AgentResult(
            agent=self.kind,
            output=generation.text,
            data={"inspections": inspections} if inspections else None,
            steps=generation.steps,
        )
