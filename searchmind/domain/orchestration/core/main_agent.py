from typing import TypedDict, AsyncIterator, Dict, Any, Optional
from langgraph.graph import StateGraph, END
import asyncio
import time
import structlog

from searchmind.application.websocket.schema.events import (
    AgentResultEvent,
    BaseEvent,
    ErrorEvent,
    RoutingEvent,
    StatusEvent,
)
from searchmind.domain.context.context_manager import ContextManager
from searchmind.domain.errors import TurnTimeoutError, UnknownAgentError
from searchmind.domain.models.agent_state import PropertyContext, RoutingPlan
from searchmind.domain.orchestration.core.execution_engine import ExecutionEngine
from searchmind.domain.orchestration.core.router import Router
from searchmind.domain.orchestration.subagent.registry import AgentRegistry
from searchmind.infrastructure.observability.langfuse_tracing import tag_current_trace
from searchmind.infrastructure.observability.logging import bind_turn_context, metrics

logger = structlog.get_logger(__name__)

NODE_STATUS = {
    "retrieve_memory": "Recalling institutional memory...",
    "load_property": "Loading property context...",
    "classify_intent": "Routing request...",
    "validate_plan": "Plan ready",
}

_TURN_DONE = object()


class PlanningState(TypedDict, total=False):
    """State for the planning graph"""
    message: str
    session_id: Optional[str]
    property_id: Optional[str]
    user_id: Optional[str]
    memory_context: str
    property_context: Optional[PropertyContext]
    plan: Optional[RoutingPlan]
    unknown_agent: Optional[str]


class AgentOrchestrator:
    """Runs a user turn: plan with a LangGraph workflow, then execute the plan"""

    def __init__(
        self,
        router: Router,
        engine: ExecutionEngine,
        context_manager: ContextManager,
        registry: AgentRegistry,
        turn_timeout_seconds: float = 300.0,
    ):
        self.router = router
        self.engine = engine
        self.context_manager = context_manager
        self.registry = registry
        self.turn_timeout_seconds = turn_timeout_seconds
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the planning graph"""

        workflow = StateGraph(PlanningState)

        workflow.add_node("retrieve_memory", self.retrieve_memory_node)
        workflow.add_node("load_property", self.load_property_node)
        workflow.add_node("classify_intent", self.classify_intent_node)
        workflow.add_node("validate_plan", self.validate_plan_node)

        workflow.set_entry_point("retrieve_memory")
        workflow.add_edge("retrieve_memory", "load_property")
        workflow.add_edge("load_property", "classify_intent")
        workflow.add_edge("classify_intent", "validate_plan")
        workflow.add_edge("validate_plan", END)

        return workflow.compile()

    async def retrieve_memory_node(self, state: PlanningState) -> Dict[str, Any]:
        memory_context = await self.context_manager.build_memory_context(state["message"], state.get("property_id"))
        return {"memory_context": memory_context}

    async def load_property_node(self, state: PlanningState) -> Dict[str, Any]:
        return {"property_context": await self.context_manager.get_property_context(state.get("property_id"))}

    async def classify_intent_node(self, state: PlanningState) -> Dict[str, Any]:
        plan = await self.router.classify(state["message"], state.get("property_context"))
        return {"plan": plan}

    async def validate_plan_node(self, state: PlanningState) -> Dict[str, Any]:
        try:
            self.registry.validate(state["plan"].planned_agents)
        except UnknownAgentError as e:
            return {"unknown_agent": e.agent}
        return {"unknown_agent": None}

    async def process_message(
        self,
        session_id: Optional[str],
        message: str,
        property_id: Optional[str] = None,
        user_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[BaseEvent]:
        """Stream the events of one turn, ending with "Complete" or a single error event"""
        bind_turn_context(session_id, property_id)
        tag_current_trace(session_id, property_id, tags=["turn"])

        loop = asyncio.get_running_loop()
        start_time = time.time()
        deadline = loop.time() + self.turn_timeout_seconds
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        producer = asyncio.create_task(
            self._produce(self._turn(session_id, message, property_id, user_id, cancel_event), queue)
        )

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise TurnTimeoutError(self.turn_timeout_seconds)
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    raise TurnTimeoutError(self.turn_timeout_seconds) from None
                if item is _TURN_DONE:
                    break
                if isinstance(item, Exception):
                    raise item
                item.session_id = session_id
                yield item

        except TurnTimeoutError as e:
            logger.error("Turn timed out", budget_seconds=self.turn_timeout_seconds)
            metrics.increment_counter("turn.timeouts")
            yield ErrorEvent(payload={"message": str(e)}, error_code="TURN_TIMEOUT", session_id=session_id)
        except UnknownAgentError as e:
            logger.error("Plan references an unregistered agent", agent=e.agent)
            yield ErrorEvent(payload={"message": str(e)}, error_code="UNKNOWN_AGENT", session_id=session_id)
        except Exception as e:
            logger.error("Turn failed", error=str(e), exc_info=True)
            yield ErrorEvent(payload={"message": f"Error processing message: {e}"}, error_code="INTERNAL_ERROR", session_id=session_id)
        finally:
            producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)
            metrics.record_latency("turn", (time.time() - start_time) * 1000)

    @staticmethod
    async def _produce(turn: AsyncIterator[BaseEvent], queue: asyncio.Queue) -> None:
        """Drive the turn in its own task, handing events, then a sentinel or the error, to the queue"""
        try:
            async for event in turn:
                await queue.put(event)
        except Exception as e:
            await queue.put(e)
        else:
            await queue.put(_TURN_DONE)
        finally:
            await turn.aclose()

    async def _turn(
        self,
        session_id: Optional[str],
        message: str,
        property_id: Optional[str],
        user_id: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> AsyncIterator[BaseEvent]:
        yield StatusEvent(payload="Analyzing request...")

        state: Dict[str, Any] = {
            "message": message,
            "session_id": session_id,
            "property_id": property_id,
            "user_id": user_id,
            "memory_context": "",
            "property_context": None,
            "plan": None,
            "unknown_agent": None,
        }
        async for update in self.workflow.astream(state, stream_mode="updates"):
            for node_id, values in update.items():
                if values:
                    state.update(values)
                if node_id in NODE_STATUS:
                    yield StatusEvent(payload=NODE_STATUS[node_id])

        if state.get("unknown_agent"):
            raise UnknownAgentError(state["unknown_agent"])

        plan: RoutingPlan = state["plan"]
        yield RoutingEvent(payload=plan)
        self.context_manager.remember_turn(message, plan, property_id)

        context = await self.context_manager.build_agent_context(
            property_id=property_id,
            session_id=session_id,
            user_id=user_id,
            memory_context=state["memory_context"],
            property_context=state["property_context"],
            metadata={"classification": plan.classification.value},
        )
        agents = ", ".join(kind.value for kind in plan.planned_agents)
        yield StatusEvent(payload=f"Running {agents} ({plan.execution_mode.value})")

        async for result in self.engine.run(plan, message, context, cancel_event):
            yield AgentResultEvent(payload=result)

        yield StatusEvent(payload="Complete")
