from typing import AsyncIterator, Optional
import asyncio

import structlog

from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult, ExecutionMode, RoutingPlan
from searchmind.domain.orchestration.subagent.registry import AgentRegistry
from searchmind.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

SEQUENTIAL_STEP_TEMPLATE = """Using the context below, perform your specialized task.

USER REQUEST: {message}

PREVIOUS AGENT OUTPUT:
{previous}

INSTITUTIONAL MEMORY:
{memory}"""


def effective_message(message: str, memory_context: str) -> str:
    return f"{message}\n\n{memory_context}" if memory_context else message


class ExecutionEngine:
    """Runs the agents of a routing plan and yields their results"""

    def __init__(self, registry: AgentRegistry, agent_timeout_seconds: float = 120.0):
        self.registry = registry
        self.agent_timeout_seconds = agent_timeout_seconds

    async def run(
        self,
        plan: RoutingPlan,
        message: str,
        context: AgentContext,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[AgentResult]:
        """Yield one AgentResult per planned agent.

        Raises UnknownAgentError before invoking anything if the plan names an
        unregistered agent. Setting ``cancel_event`` stops further agents from
        being scheduled; an agent already running is allowed to finish.
        """
        self.registry.validate(plan.planned_agents)
        memory_context = context.memory_context

        if plan.execution_mode == ExecutionMode.SINGLE:
            yield await self._invoke(plan.primary_agent, effective_message(message, memory_context), context)

        elif plan.execution_mode == ExecutionMode.SEQUENTIAL:
            primary = await self._invoke(plan.primary_agent, effective_message(message, memory_context), context)
            yield primary

            previous = f"Initial Result: {primary.output}"
            for kind in plan.secondary_agents:
                if _cancelled(cancel_event):
                    logger.info("Turn cancelled, not scheduling further agents", next_agent=kind.value)
                    return
                step_message = SEQUENTIAL_STEP_TEMPLATE.format(message=message, previous=previous, memory=memory_context)
                result = await self._invoke(kind, step_message, context)
                yield result
                previous += f"\n\nResult from {kind.value}: {result.output}"

        else:
            shared = effective_message(message, memory_context)
            tasks = [asyncio.create_task(self._invoke(kind, shared, context)) for kind in plan.planned_agents]
            try:
                for next_done in asyncio.as_completed(tasks):
                    yield await next_done
                    if _cancelled(cancel_event):
                        logger.info("Turn cancelled, dropping pending parallel agents")
                        return
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

    async def _invoke(self, kind: AgentKind, message: str, context: AgentContext) -> AgentResult:
        agent = self.registry.get(kind)
        metrics.increment_counter("agent.invocations", tags={"agent": kind.value})
        try:
            result = await asyncio.wait_for(agent.execute(message, context), timeout=self.agent_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Agent timed out", agent=kind.value, timeout_seconds=self.agent_timeout_seconds)
            return AgentResult(
                agent=kind,
                output=f"{agent.failure_label}: timed out after {self.agent_timeout_seconds:g}s",
            )
        except Exception as e:
            logger.error("Agent raised past its boundary", agent=kind.value, error=str(e))
            return AgentResult(agent=kind, output=f"{agent.failure_label}: {e}")

        if result.agent != kind:
            result = result.model_copy(update={"agent": kind})
        return result


def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()
