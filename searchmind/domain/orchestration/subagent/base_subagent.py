from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import time

import structlog

from searchmind.domain.context.memory.action_log import ActionLog
from searchmind.domain.models.agent_state import AgentContext, AgentKind, AgentResult
from searchmind.domain.models.memory_records import ActionRecord
from searchmind.domain.tool.tool_registry import ToolRegistry
from searchmind.infrastructure.llm.inference import InferenceClient
from searchmind.infrastructure.observability.langfuse_tracing import traced
from searchmind.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

PROPERTY_REQUIRED = "I need a selected property to perform analysis. Please select a property first."


class BaseSubAgent(ABC):
    """Base class for specialist agents.

    ``execute`` is the agent boundary: it never raises. Missing context and
    internal failures both come back as an ``AgentResult`` whose output tells
    the user what happened.
    """

    kind: AgentKind
    description: str = ""
    failure_label: str = "Agent failed"
    # Strategy identifier recorded in the action log after a successful run
    action_type: Optional[str] = None

    def __init__(
        self,
        inference: Optional[InferenceClient] = None,
        tool_registry: Optional[ToolRegistry] = None,
        action_log: Optional[ActionLog] = None,
    ):
        self.inference = inference
        self.tool_registry = tool_registry
        self.action_log = action_log
        self.last_active: Optional[datetime] = None

    def missing_context(self, context: AgentContext) -> Optional[str]:
        """Message to return instead of running when required context is absent"""
        return None

    @abstractmethod
    async def run(self, message: str, context: AgentContext) -> AgentResult:
        """Do the agent's work; exceptions are handled by ``execute``"""
        pass

    @traced("agent.execute")
    async def execute(self, message: str, context: AgentContext) -> AgentResult:
        self.update_activity()
        missing = self.missing_context(context)
        if missing:
            return AgentResult(agent=self.kind, output=missing)

        start_time = time.time()
        agent_logger.log_agent_event("agent_started", self.kind.value, property_id=context.property_id)
        try:
            result = await self.run(message, context)
        except Exception as e:
            logger.error("Agent execution failed", agent=self.kind.value, error=str(e), exc_info=True)
            metrics.increment_counter("agent.failures", tags={"agent": self.kind.value})
            return AgentResult(agent=self.kind, output=f"{self.failure_label}: {e}")

        duration_ms = (time.time() - start_time) * 1000
        metrics.record_latency("agent.execute", duration_ms, tags={"agent": self.kind.value})
        agent_logger.log_agent_event(
            "agent_completed",
            self.kind.value,
            property_id=context.property_id,
            data={"duration_ms": duration_ms, "tool_calls": len(result.steps or [])},
        )
        await self._record_action(message, context, result)
        return result

    def tools(self, context: AgentContext):
        if self.tool_registry is None:
            return []
        return self.tool_registry.tools_for(self.kind, context)

    def update_activity(self):
        self.last_active = datetime.now(timezone.utc)

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.kind.value,
            "description": self.description,
            "last_active": self.last_active.isoformat() if self.last_active else None,
        }

    async def _record_action(self, message: str, context: AgentContext, result: AgentResult) -> None:
        if self.action_log is None or self.action_type is None:
            return
        try:
            await self.action_log.record(ActionRecord(
                property_id=context.property_id,
                agent_type=self.kind.value,
                action_type=self.action_type,
                context_summary=message.split("\n\n", 1)[0][:280],
                action_details={
                    "summary": result.output[:1000],
                    "tools": [step.get("tool") for step in result.steps or []],
                },
            ))
        except Exception as e:
            logger.error("Failed to record action", agent=self.kind.value, error=str(e))

    def _require_inference(self) -> InferenceClient:
        if self.inference is None:
            raise RuntimeError(f"{self.kind.value} agent has no inference client")
        return self.inference
