from typing import Dict, Any, Optional
import json

from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.orchestration.subagent.base_subagent import PROPERTY_REQUIRED, BaseSubAgent
from searchmind.domain.scoring import (
    aggregate_rows,
    analyze_ranking_velocity,
    detect_crawl_waste,
    detect_ctr_anomalies,
    find_striking_distance,
)
from searchmind.infrastructure.persistence.analytics_store import AnalyticsStore

FINDINGS_LIMIT = 10

SYSTEM_PROMPT = """You are the ANALYST AGENT for SearchMind.
Property ID: {property_id} (use it for all tool calls).

Your goal: analyze search data to find anomalies, trends and root causes.

PROTOCOLS:
1. Anomaly detection: CTR drop with stable position is a TITLE_META_ISSUE; a position drop is a
   RANK_RELEVANCE_ISSUE; high crawl with zero clicks is CRAWL_WASTE.
2. Quantify impact: estimate clicks lost or gained, with a confidence level based on data density.
3. Style: concise, data-dense, bulleted. Use CAPS for metric names (CLICKS, CTR).
4. Tools: filter analytics by URL when the user names one; for a health check look at velocity and analytics.

CURRENT CONTEXT:
URL: {url}
Total clicks (30d): {total_clicks}

PRE-COMPUTED FINDINGS (deterministic):
{findings}
"""


class AnalystAgent(BaseSubAgent):
    """Performance analysis over stored Search Console data"""

    kind = AgentKind.ANALYST
    description = "Traffic, ranking and CTR analysis"
    failure_label = "Analysis failed"
    action_type = "performance_scan"

    def __init__(self, analytics_store: AnalyticsStore, **kwargs):
        super().__init__(**kwargs)
        self.analytics_store = analytics_store

    def missing_context(self, context: AgentContext) -> Optional[str]:
        if not context.property_id:
            return PROPERTY_REQUIRED
        return None

    async def scan(self, property_id: str) -> Dict[str, Any]:
        """Run every deterministic detector against the property's recent data"""
        rows = await self.analytics_store.query_analytics(property_id, days=30)
        aggregated = aggregate_rows(rows)
        velocity = analyze_ranking_velocity(await self.analytics_store.ranking_history(property_id))
        url_metrics = await self.analytics_store.url_metrics(property_id)

        return {
            "ctr_anomalies": [a.model_dump(mode="json") for a in detect_ctr_anomalies(aggregated)[:FINDINGS_LIMIT]],
            "velocity_alerts": [s.model_dump(mode="json") for s in velocity if s.alert][:FINDINGS_LIMIT],
            "striking_distance": [o.model_dump(mode="json") for o in find_striking_distance(aggregated)[:FINDINGS_LIMIT]],
            "crawl_waste": [f.model_dump(mode="json") for f in detect_crawl_waste(url_metrics)[:FINDINGS_LIMIT]],
        }

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        findings = await self.scan(context.property_id)
        system_prompt = SYSTEM_PROMPT.format(
            property_id=context.property_id,
            url=context.url or "unknown",
            total_clicks=context.total_clicks if context.total_clicks is not None else "unknown",
            findings=json.dumps(findings, indent=2),
        )
        generation = await self._require_inference().generate(system_prompt, message, tools=self.tools(context))
        return AgentResult(agent=self.kind, output=generation.text, data=findings, steps=generation.steps)
