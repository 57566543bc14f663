import asyncio
import json

from conftest import FailingEmbeddings, FakeEmbeddings, FakeInference, StubAgent, make_plan

from searchmind.application.websocket.schema.events import (
    AgentResultEvent,
    ErrorEvent,
    EventType,
    RoutingEvent,
    StatusEvent,
)
from searchmind.domain.context.context_manager import MEMORY_HEADER, ContextManager, format_memory_context
from searchmind.domain.context.memory.memory_store import InMemoryMemoryStore
from searchmind.domain.models.agent_state import AgentKind, AgentResult, ExecutionMode
from searchmind.domain.models.memory_records import MemoryRecord, MemoryType, ScoredMemory
from searchmind.domain.orchestration.core.execution_engine import ExecutionEngine
from searchmind.domain.orchestration.core.main_agent import AgentOrchestrator
from searchmind.domain.orchestration.core.router import Router
from searchmind.domain.orchestration.subagent.registry import AgentRegistry
from searchmind.domain.streaming.streaming_handler import StreamingHandler, format_sse
from searchmind.infrastructure.llm.embeddings import EmbeddingService
from searchmind.infrastructure.persistence.analytics_store import AnalyticsStore


def make_orchestrator(agents, plan=None, embeddings=None, turn_timeout=300.0):
    context_manager = ContextManager(
        InMemoryMemoryStore(),
        EmbeddingService(embeddings or FakeEmbeddings()),
        AnalyticsStore(),
    )
    registry = AgentRegistry(agents)
    return AgentOrchestrator(
        Router(FakeInference(plan=plan or make_plan())),
        ExecutionEngine(registry),
        context_manager,
        registry,
        turn_timeout_seconds=turn_timeout,
    )


def run_turn(orchestrator, message="hello", session_id="s-1", property_id=None):
    async def run():
        events = [e async for e in orchestrator.process_message(session_id, message, property_id=property_id)]
        await orchestrator.context_manager.drain()
        return events

    return asyncio.run(run())


class TestTurn:
    def test_event_order(self):
        events = run_turn(make_orchestrator([StubAgent(AgentKind.ANALYST)]))

        statuses = [e.payload for e in events if isinstance(e, StatusEvent)]
        assert statuses[0] == "Analyzing request..."
        assert statuses[1:5] == [
            "Recalling institutional memory...",
            "Loading property context...",
            "Routing request...",
            "Plan ready",
        ]
        assert statuses[-1] == "Complete"
        assert "Running ANALYST (SINGLE)" in statuses

        kinds = [e.type for e in events]
        assert kinds.index(EventType.ROUTING) < kinds.index(EventType.AGENT_RESULT)
        assert all(e.session_id == "s-1" for e in events)

    def test_turn_is_remembered(self):
        orchestrator = make_orchestrator([StubAgent(AgentKind.ANALYST)])
        run_turn(orchestrator)

        memories = asyncio.run(orchestrator.context_manager.memory_store.recent(MemoryType.EPISODIC, 10))

        assert [m.content for m in memories] == ["User Query: hello -> Routed to: ANALYST"]
        assert memories[0].importance_weight == 0.5
        assert memories[0].metadata["routing"]["primary_agent"] == "ANALYST"

    def test_sequential_plan_streams_each_result(self):
        plan = make_plan(AgentKind.AUDITOR, secondary=[AgentKind.OPTIMIZER], mode=ExecutionMode.SEQUENTIAL)
        orchestrator = make_orchestrator([StubAgent(AgentKind.AUDITOR), StubAgent(AgentKind.OPTIMIZER)], plan=plan)

        events = run_turn(orchestrator)

        results = [e.payload.agent for e in events if isinstance(e, AgentResultEvent)]
        routing = [e for e in events if isinstance(e, RoutingEvent)]
        assert results == [AgentKind.AUDITOR, AgentKind.OPTIMIZER]
        assert routing[0].payload == plan

    def test_memory_context_reaches_the_agent(self):
        analyst = StubAgent(AgentKind.ANALYST)
        orchestrator = make_orchestrator([analyst])
        asyncio.run(orchestrator.context_manager.memory_store.insert(
            MemoryRecord(property_id="prop-1", content="Titles were rewritten in May", embedding=[1.0, 0.0, 0.0])
        ))

        run_turn(orchestrator, property_id="prop-1")

        assert analyst.messages[0].startswith(f"hello\n\n{MEMORY_HEADER}\n")
        assert "Titles were rewritten in May" in analyst.messages[0]


class TestTurnErrors:
    def test_unknown_agent_ends_the_turn(self):
        plan = make_plan(AgentKind.ANALYST, secondary=[AgentKind.PLANNER], mode=ExecutionMode.SEQUENTIAL)
        analyst = StubAgent(AgentKind.ANALYST)

        events = run_turn(make_orchestrator([analyst], plan=plan))

        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].error_code == "UNKNOWN_AGENT"
        assert not any(isinstance(e, (RoutingEvent, AgentResultEvent)) for e in events)
        assert analyst.messages == []

    def test_turn_timeout(self):
        orchestrator = make_orchestrator([StubAgent(AgentKind.ANALYST, delay=1.0)], turn_timeout=0.2)

        events = run_turn(orchestrator)

        assert events[-1].error_code == "TURN_TIMEOUT"
        assert sum(isinstance(e, ErrorEvent) for e in events) == 1
        assert not any(isinstance(e, StatusEvent) and e.payload == "Complete" for e in events)

    def test_failed_memory_retrieval_does_not_stop_the_turn(self):
        analyst = StubAgent(AgentKind.ANALYST)
        events = run_turn(make_orchestrator([analyst], embeddings=FailingEmbeddings()))

        assert events[-1].payload == "Complete"
        assert analyst.messages == ["hello"]


def test_format_memory_context():
    hit = ScoredMemory(record=MemoryRecord(content="Blog CTR improved"), similarity=0.9, recency=0.5, score=0.82)
    assert format_memory_context([hit]) == f"{MEMORY_HEADER}\n- [Score: 0.82] Blog CTR improved"
    assert format_memory_context([]) == ""


class TestStreamingHandler:
    @staticmethod
    async def events():
        yield StatusEvent(payload="Analyzing request...")
        yield RoutingEvent(payload=make_plan())
        yield AgentResultEvent(payload=AgentResult(agent=AgentKind.ANALYST, output="done"))
        yield ErrorEvent(payload={"message": "boom"}, error_code="INTERNAL_ERROR")

    def test_collect(self):
        response = asyncio.run(StreamingHandler().collect("s-1", self.events()))

        assert response.session_id == "s-1"
        assert response.routing == make_plan()
        assert [r.output for r in response.results] == ["done"]
        assert response.error == {"message": "boom", "error_code": "INTERNAL_ERROR"}

    def test_format_sse(self):
        frame = format_sse(StatusEvent(payload="Complete", session_id="s-1"))
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        body = json.loads(frame[len("data: "):])
        assert body["type"] == "status"
        assert body["payload"] == "Complete"
