from typing import Optional

import structlog

from searchmind.domain.errors import ClassificationError
from searchmind.domain.models.agent_state import (
    AgentKind,
    Classification,
    ExecutionMode,
    PropertyContext,
    RoutingPlan,
)
from searchmind.infrastructure.llm.inference import InferenceClient
from searchmind.infrastructure.observability.langfuse_tracing import traced
from searchmind.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

FALLBACK_REASONING = "fallback due to classification error"

SYSTEM_PROMPT = """You are the orchestrator for SearchMind. Route the user's request to the best specialist agent.

AVAILABLE AGENTS:
- ANALYST: search analytics, traffic trends and URL performance. Best for "verify", "analyze", "why".
- AUDITOR: technical issues (indexing, 404s, robots.txt). Best for "audit", "check indexing".
- RESEARCH: external data (algorithm updates, competitors, keywords). Best for "find topics", "suggest".
- OPTIMIZER: code fixes (schema, meta descriptions, titles) and internal links. Best for "optimize", "generate", "fix".
- PLANNER: strategic roadmaps and action plans. Best for "roadmap", "what next?".
- MEMORY: institutional knowledge, learned skills, consolidation status. Best for "what have you learned?".
- ASSISTANT: greetings, help or unknown queries. Only ever a primary agent.

CONTEXT:
{context}

RULES:
1. Traffic or ranking questions ("why did traffic drop?") -> ANALYTICS_QUERY, ANALYST.
2. Indexing or technical questions -> TECHNICAL_AUDIT, AUDITOR.
3. Keyword gaps, algorithm updates, competitors -> CONTENT_RESEARCH, RESEARCH.
4. Meta descriptions, schema, "fix this" -> OPTIMIZATION, OPTIMIZER.
5. Roadmaps, "what should I do this week?" -> PLANNING, PLANNER.
6. "What strategies worked?", "summarize learnings" -> MEMORY_QUERY, MEMORY.
7. Compound requests ("audit this site and give me a fix") -> COMPLEX_TASK, SEQUENTIAL, AUDITOR then OPTIMIZER.
8. Independent questions about several areas at once may use PARALLEL.
Use SINGLE unless several agents are genuinely needed."""


def describe_property(property_context: Optional[PropertyContext]) -> str:
    if property_context is None:
        return "No active property selected."
    return (
        f"Active Property: {property_context.url} | Clicks (30d): {property_context.total_clicks}"
        f" | Declining Pages: {property_context.declining_pages}"
    )


class Router:
    """Classifies a user request into a routing plan"""

    def __init__(self, inference: InferenceClient, default_agent: AgentKind = AgentKind.ANALYST):
        self.inference = inference
        self.default_agent = default_agent

    def fallback_plan(self) -> RoutingPlan:
        return RoutingPlan(
            classification=Classification.ANALYTICS_QUERY,
            primary_agent=self.default_agent,
            secondary_agents=[],
            execution_mode=ExecutionMode.SINGLE,
            reasoning=FALLBACK_REASONING,
            next_steps=[],
        )

    @traced("router.classify")
    async def classify(self, message: str, property_context: Optional[PropertyContext] = None) -> RoutingPlan:
        """Return a plan for the message; never raises, falling back to the default agent"""
        fallback = False
        try:
            plan = await self._classify(message, property_context)
        except Exception as e:
            logger.warning("Classification failed, using fallback plan", error=str(e))
            metrics.increment_counter("router.fallback")
            plan = self.fallback_plan()
            fallback = True

        agent_logger.log_routing_decision(
            classification=plan.classification.value,
            primary_agent=plan.primary_agent.value,
            secondary_agents=[a.value for a in plan.secondary_agents],
            execution_mode=plan.execution_mode.value,
            fallback=fallback,
        )
        return plan

    async def _classify(self, message: str, property_context: Optional[PropertyContext]) -> RoutingPlan:
        system_prompt = SYSTEM_PROMPT.format(context=describe_property(property_context))
        plan = await self.inference.generate_structured(system_prompt, message, RoutingPlan)
        if not isinstance(plan, RoutingPlan):
            raise ClassificationError(f"Unexpected routing output: {type(plan).__name__}")

        # The assistant answers on its own; it is never chained behind another agent
        secondaries = [a for a in plan.secondary_agents if a != AgentKind.ASSISTANT]
        if secondaries != plan.secondary_agents:
            plan = plan.model_copy(update={"secondary_agents": secondaries})
        return plan
