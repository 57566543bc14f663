from typing import Dict, List, Any, Optional, Set
import asyncio

import structlog

from searchmind.domain.context.memory.memory_store import MemoryStore
from searchmind.domain.models.agent_state import AgentContext, PropertyContext, RoutingPlan
from searchmind.domain.models.memory_records import MemoryRecord, MemoryType, ScoredMemory
from searchmind.infrastructure.llm.embeddings import EmbeddingService
from searchmind.infrastructure.observability.logging import agent_logger, metrics
from searchmind.infrastructure.persistence.analytics_store import AnalyticsStore

logger = structlog.get_logger(__name__)

MEMORY_HEADER = "PAST MEMORIES (INSTITUTIONAL KNOWLEDGE):"
TURN_IMPORTANCE = 0.5


def format_memory_context(hits: List[ScoredMemory]) -> str:
    if not hits:
        return ""
    lines = [f"- [Score: {hit.score:.2f}] {hit.record.content}" for hit in hits]
    return "\n".join([MEMORY_HEADER, *lines])


class ContextManager:
    """Assembles per-turn context from institutional memory and the analytics store"""

    def __init__(
        self,
        memory_store: MemoryStore,
        embeddings: EmbeddingService,
        analytics_store: AnalyticsStore,
        min_score: float = 0.5,
        limit: int = 5,
    ):
        self.memory_store = memory_store
        self.embeddings = embeddings
        self.analytics_store = analytics_store
        self.min_score = min_score
        self.limit = limit
        self._background: Set[asyncio.Task] = set()

    async def build_memory_context(self, message: str, property_id: Optional[str]) -> str:
        """Retrieve and format relevant memories; any failure yields an empty context"""
        try:
            embedding = await self.embeddings.embed(message)
            hits = await self.memory_store.query(
                embedding, min_score=self.min_score, limit=self.limit, property_id=property_id
            )
            for hit in hits:
                await self.memory_store.touch(hit.record.id)
        except Exception as e:
            logger.warning("Memory retrieval failed", property_id=property_id, error=str(e))
            metrics.increment_counter("memory.retrieval_failures")
            return ""

        agent_logger.log_memory_operation("retrieve", property_id, count=len(hits))
        return format_memory_context(hits)

    async def get_property_context(self, property_id: Optional[str]) -> Optional[PropertyContext]:
        if not property_id:
            return None
        try:
            summary = await self.analytics_store.property_summary(property_id)
        except Exception as e:
            logger.warning("Property summary failed", property_id=property_id, error=str(e))
            return None
        if summary is None:
            return None
        return PropertyContext(url=summary.url, total_clicks=summary.total_clicks, declining_pages=summary.declining_pages)

    async def build_agent_context(
        self,
        property_id: Optional[str],
        session_id: Optional[str],
        user_id: Optional[str],
        memory_context: str,
        property_context: Optional[PropertyContext],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentContext:
        prop = await self.analytics_store.get_property(property_id) if property_id else None
        return AgentContext(
            property_id=property_id,
            url=property_context.url if property_context else (prop.site_url if prop else None),
            user_id=user_id or (prop.user_id if prop else None),
            session_id=session_id,
            total_clicks=property_context.total_clicks if property_context else None,
            memory_context=memory_context,
            metadata=metadata or {},
        )

    def remember_turn(self, message: str, plan: RoutingPlan, property_id: Optional[str]) -> asyncio.Task:
        """Persist the turn as an episodic memory in a detached task"""
        task = asyncio.create_task(self._persist_turn(message, plan, property_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding background writes"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _persist_turn(self, message: str, plan: RoutingPlan, property_id: Optional[str]) -> None:
        content = f"User Query: {message} -> Routed to: {plan.primary_agent.value}"
        try:
            embedding = await self.embeddings.embed(content)
            await self.memory_store.insert(MemoryRecord(
                property_id=property_id,
                memory_type=MemoryType.EPISODIC,
                content=content,
                embedding=embedding,
                importance_weight=TURN_IMPORTANCE,
                metadata={"routing": plan.model_dump(mode="json")},
            ))
            agent_logger.log_memory_operation("insert", property_id, count=1)
        except Exception as e:
            logger.error("Failed to persist turn memory", property_id=property_id, error=str(e))
            metrics.increment_counter("memory.persist_failures")
