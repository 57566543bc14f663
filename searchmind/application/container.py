from typing import Optional
from dataclasses import dataclass

import structlog
from fastapi.requests import HTTPConnection
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel

from searchmind.application.websocket.connection_manager import ConnectionManager
from searchmind.domain.consolidation.sleep_cycle import SleepCycle, SleepCycleScheduler
from searchmind.domain.context.context_manager import ContextManager
from searchmind.domain.context.memory.action_log import ActionLog
from searchmind.domain.context.memory.memory_store import InMemoryMemoryStore, MemoryStore
from searchmind.domain.context.memory.skill_library import SkillLibrary
from searchmind.domain.errors import SearchConsoleError
from searchmind.domain.models.agent_state import AgentKind
from searchmind.domain.orchestration.core.execution_engine import ExecutionEngine
from searchmind.domain.orchestration.core.main_agent import AgentOrchestrator
from searchmind.domain.orchestration.core.router import Router
from searchmind.domain.orchestration.subagent.analyst import AnalystAgent
from searchmind.domain.orchestration.subagent.assistant import AssistantAgent
from searchmind.domain.orchestration.subagent.auditor import AuditorAgent
from searchmind.domain.orchestration.subagent.memory_reporter import MemoryReporterAgent
from searchmind.domain.orchestration.subagent.optimizer import OptimizerAgent
from searchmind.domain.orchestration.subagent.planner import PlannerAgent
from searchmind.domain.orchestration.subagent.registry import AgentRegistry
from searchmind.domain.orchestration.subagent.research import ResearchAgent
from searchmind.domain.streaming.streaming_handler import StreamingHandler
from searchmind.domain.sync.data_sync import DataSyncJob
from searchmind.domain.tool.tool_registry import ToolRegistry
from searchmind.infrastructure.config.settings import Settings, get_settings
from searchmind.infrastructure.gsc.search_console_client import SearchConsoleClient, TokenProvider
from searchmind.infrastructure.llm.embeddings import EmbeddingService, create_embeddings
from searchmind.infrastructure.llm.inference import InferenceClient, create_chat_model
from searchmind.infrastructure.persistence.analytics_store import AnalyticsStore

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Every long-lived component of the running service"""
    settings: Settings
    analytics_store: AnalyticsStore
    memory_store: MemoryStore
    action_log: ActionLog
    skill_library: SkillLibrary
    search_console: SearchConsoleClient
    registry: AgentRegistry
    orchestrator: AgentOrchestrator
    context_manager: ContextManager
    connection_manager: ConnectionManager
    streaming: StreamingHandler
    sleep_cycle: SleepCycle
    scheduler: SleepCycleScheduler
    data_sync: DataSyncJob


def static_token_provider(token: Optional[str]) -> TokenProvider:
    """Token provider returning one configured access token for every user"""

    async def provide(user_id: str) -> str:
        if not token:
            raise SearchConsoleError("No Search Console credentials configured")
        return token

    return provide


def build_services(
    settings: Optional[Settings] = None,
    chat_model: Optional[BaseChatModel] = None,
    router_model: Optional[BaseChatModel] = None,
    embeddings: Optional[Embeddings] = None,
    token_provider: Optional[TokenProvider] = None,
    search_console: Optional[SearchConsoleClient] = None,
) -> Services:
    """Wire the service; models and clients may be injected, otherwise they come from settings"""
    settings = settings or get_settings()

    if chat_model is None:
        chat_model = create_chat_model(settings.chat_model)
    if router_model is None:
        router_model = chat_model if settings.router_model == settings.chat_model else create_chat_model(settings.router_model)
    if embeddings is None:
        embeddings = create_embeddings(settings.embedding_model)

    analytics_store = AnalyticsStore()
    memory_store = InMemoryMemoryStore()
    action_log = ActionLog()
    skill_library = SkillLibrary()
    search_console = search_console or SearchConsoleClient(
        token_provider or static_token_provider(settings.gsc_access_token),
        max_attempts=settings.gsc_max_attempts,
    )

    inference = InferenceClient(chat_model, max_tool_rounds=settings.max_tool_rounds)
    embedding_service = EmbeddingService(embeddings, dimensions=settings.embedding_dimensions)
    tool_registry = ToolRegistry(analytics_store, search_console)
    shared = {"inference": inference, "tool_registry": tool_registry, "action_log": action_log}

    registry = AgentRegistry([
        AnalystAgent(analytics_store, **shared),
        AuditorAgent(**shared),
        ResearchAgent(search_grounding=settings.enable_search_grounding, **shared),
        OptimizerAgent(**shared),
        PlannerAgent(**shared),
        MemoryReporterAgent(memory_store, skill_library, **shared),
        AssistantAgent(),
    ])

    context_manager = ContextManager(
        memory_store,
        embedding_service,
        analytics_store,
        min_score=settings.memory_min_score,
        limit=settings.memory_context_limit,
    )
    router = Router(
        InferenceClient(router_model, max_tool_rounds=settings.max_tool_rounds),
        default_agent=AgentKind(settings.default_agent),
    )
    engine = ExecutionEngine(registry, agent_timeout_seconds=settings.agent_timeout_seconds)
    orchestrator = AgentOrchestrator(
        router,
        engine,
        context_manager,
        registry,
        turn_timeout_seconds=settings.turn_timeout_seconds,
    )

    connection_manager = ConnectionManager()
    sleep_cycle = SleepCycle(memory_store, action_log, skill_library, settings)

    logger.info(
        "Services built",
        agents=[kind.value for kind in registry.kinds()],
        chat_model=settings.chat_model,
        embedding_model=settings.embedding_model,
    )

    return Services(
        settings=settings,
        analytics_store=analytics_store,
        memory_store=memory_store,
        action_log=action_log,
        skill_library=skill_library,
        search_console=search_console,
        registry=registry,
        orchestrator=orchestrator,
        context_manager=context_manager,
        connection_manager=connection_manager,
        streaming=StreamingHandler(connection_manager),
        sleep_cycle=sleep_cycle,
        scheduler=SleepCycleScheduler(sleep_cycle, settings.sleep_cycle_interval_seconds),
        data_sync=DataSyncJob(
            analytics_store,
            search_console,
            window_days=settings.sync_window_days,
            lag_days=settings.sync_lag_days,
        ),
    )


def get_services(connection: HTTPConnection) -> Services:
    """FastAPI dependency resolving the services attached to the running app"""
    return connection.app.state.services
