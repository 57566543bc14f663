from typing import Dict, List, Any, Optional, Tuple
import time

import structlog
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from searchmind.domain.models.agent_state import AgentContext, AgentKind
from searchmind.infrastructure.gsc.search_console_client import SearchConsoleClient
from searchmind.infrastructure.observability.logging import agent_logger
from searchmind.infrastructure.persistence.analytics_store import (
    MAX_ANALYTICS_DAYS,
    MAX_ANALYTICS_ROWS,
    AnalyticsStore,
    VelocitySort,
)

logger = structlog.get_logger(__name__)

SEARCH_ANALYTICS = "get_search_analytics"
RANKING_VELOCITY = "get_ranking_velocity"
URL_METRICS = "get_url_metrics"
INSPECT_URL = "inspect_url"

AGENT_TOOL_PERMISSIONS: Dict[AgentKind, Tuple[str, ...]] = {
    AgentKind.ANALYST: (SEARCH_ANALYTICS, RANKING_VELOCITY, URL_METRICS),
    AgentKind.AUDITOR: (INSPECT_URL,),
    AgentKind.RESEARCH: (),
    AgentKind.OPTIMIZER: (),
    AgentKind.PLANNER: (),
    AgentKind.MEMORY: (),
    AgentKind.ASSISTANT: (),
}

# Provider-side tool for Gemini search grounding
SEARCH_GROUNDING_TOOL: Dict[str, Any] = {"google_search": {}}


class SearchAnalyticsArgs(BaseModel):
    url: Optional[str] = Field(None, description="Filter by specific page URL")
    query: Optional[str] = Field(None, description="Filter by specific search query")
    days: int = Field(30, description="Number of days to look back (default 30, max 90)")
    limit: int = Field(MAX_ANALYTICS_ROWS, description="Maximum rows to return (max 5000)")


class RankingVelocityArgs(BaseModel):
    sort: VelocitySort = Field(VelocitySort.DROP, description="DROP, RISE or VOLATILE")
    limit: int = Field(20, description="Limit results (default 20)")


class UrlMetricsArgs(BaseModel):
    min_score: Optional[float] = Field(None, description="Filter by minimum SEO priority score")
    limit: int = Field(20, description="Limit results (default 20)")


class InspectUrlArgs(BaseModel):
    url: str = Field(description="The specific page URL to inspect")


class InspectionVerdict(BaseModel):
    """Deterministic reading of a URL Inspection API result"""
    verdict: str = "UNKNOWN"
    coverage_state: Optional[str] = None
    issues: List[str] = Field(default_factory=list)
    canonical_mismatch: bool = False
    mobile_usable: Optional[bool] = None


def interpret_inspection(result: Dict[str, Any]) -> InspectionVerdict:
    index_status = result.get("indexStatusResult", {}) or {}
    mobile = result.get("mobileUsabilityResult", {}) or {}

    verdict = InspectionVerdict(
        verdict=index_status.get("verdict", "UNKNOWN"),
        coverage_state=index_status.get("coverageState"),
    )
    if verdict.verdict == "FAIL":
        verdict.issues.append("Indexing verdict is FAIL")

    coverage = (verdict.coverage_state or "").lower()
    if "crawled - currently not indexed" in coverage:
        verdict.issues.append("Crawled but not indexed: Google chose not to index the page (quality signal)")
    elif "discovered - currently not indexed" in coverage:
        verdict.issues.append("Discovered but not crawled yet (crawl budget or capacity)")
    if "soft 404" in coverage:
        verdict.issues.append("Soft 404: page returns 200 but looks like an error page")
    if "blocked by robots.txt" in coverage or index_status.get("robotsTxtState") == "DISALLOWED":
        verdict.issues.append("Blocked by robots.txt: review robots.txt rules")

    user_canonical = index_status.get("userCanonical")
    google_canonical = index_status.get("googleCanonical")
    if user_canonical and google_canonical and user_canonical != google_canonical:
        verdict.canonical_mismatch = True
        verdict.issues.append(f"Canonical schism: declared {user_canonical} but Google chose {google_canonical}")

    if mobile.get("verdict"):
        verdict.mobile_usable = mobile["verdict"] != "FAIL"
        if not verdict.mobile_usable:
            for issue in mobile.get("issues", []) or []:
                verdict.issues.append(f"Mobile usability: {issue.get('issueType', 'unknown issue')}")
    return verdict


class ToolRegistry:
    """Builds the tools an agent may call, bound to the active property"""

    def __init__(self, analytics_store: AnalyticsStore, search_console: Optional[SearchConsoleClient] = None):
        self.analytics_store = analytics_store
        self.search_console = search_console

    def tools_for(self, agent: AgentKind, context: AgentContext) -> List[StructuredTool]:
        allowed = AGENT_TOOL_PERMISSIONS.get(agent, ())
        if not allowed or not context.property_id:
            return []
        tools = self.build_tools(context)
        return [tools[name] for name in allowed if name in tools]

    def build_tools(self, context: AgentContext) -> Dict[str, StructuredTool]:
        property_id = context.property_id
        store = self.analytics_store

        async def get_search_analytics(
            url: Optional[str] = None,
            query: Optional[str] = None,
            days: int = 30,
            limit: int = MAX_ANALYTICS_ROWS,
        ) -> List[Dict[str, Any]]:
            rows = await store.query_analytics(property_id, url=url, query=query, days=days, limit=limit)
            return [
                r.model_dump(mode="json", include={"date", "query", "page", "clicks", "impressions", "ctr", "position"})
                for r in rows
            ]

        async def get_ranking_velocity(sort: VelocitySort = VelocitySort.DROP, limit: int = 20) -> List[Dict[str, Any]]:
            signals = await store.ranking_velocity(property_id, sort=VelocitySort(sort), limit=limit)
            return [s.model_dump(mode="json") for s in signals]

        async def get_url_metrics(min_score: Optional[float] = None, limit: int = 20) -> List[Dict[str, Any]]:
            metrics = await store.url_metrics(property_id, min_score=min_score, limit=limit)
            return [m.model_dump(mode="json", exclude={"property_id"}) for m in metrics]

        async def inspect_url(url: str) -> Dict[str, Any]:
            if self.search_console is None or not context.user_id:
                return {"error": "URL inspection requires Search Console credentials for this property"}
            result = await self.search_console.inspect_url(context.user_id, context.url or property_id, url)
            return {"url": url, "result": result, "interpretation": interpret_inspection(result).model_dump()}

        return {
            SEARCH_ANALYTICS: self._tool(
                get_search_analytics,
                SEARCH_ANALYTICS,
                f"Get daily search analytics (clicks, impressions, position, ctr) for up to the last {MAX_ANALYTICS_DAYS} days. Useful for detecting trends.",
                SearchAnalyticsArgs,
                property_id,
            ),
            RANKING_VELOCITY: self._tool(
                get_ranking_velocity,
                RANKING_VELOCITY,
                "Get ranking velocity (momentum) for keywords. Identifies fast-rising or dropping terms.",
                RankingVelocityArgs,
                property_id,
            ),
            URL_METRICS: self._tool(
                get_url_metrics,
                URL_METRICS,
                "Get SEO priority scores and technical metrics (crawl frequency) for URLs.",
                UrlMetricsArgs,
                property_id,
            ),
            INSPECT_URL: self._tool(
                inspect_url,
                INSPECT_URL,
                "Check the live Google indexing status of a URL. Returns coverage, mobile usability and canonical status.",
                InspectUrlArgs,
                property_id,
            ),
        }

    def _tool(self, coroutine, name: str, description: str, args_schema, property_id: Optional[str]) -> StructuredTool:
        async def logged(**kwargs):
            start_time = time.time()
            result = await coroutine(**kwargs)
            agent_logger.log_tool_execution(
                tool_name=name,
                property_id=property_id,
                input_data=kwargs,
                row_count=len(result) if isinstance(result, list) else None,
                duration_ms=(time.time() - start_time) * 1000,
            )
            return result

        return StructuredTool.from_function(
            coroutine=logged,
            name=name,
            description=description,
            args_schema=args_schema,
        )
