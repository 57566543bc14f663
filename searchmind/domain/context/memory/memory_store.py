from typing import Callable, Dict, List, Any, Optional, Tuple
from abc import ABC, abstractmethod
from datetime import datetime
import asyncio

import structlog

from searchmind.domain.context.context_ranker import cosine_similarity, hybrid_score, recency_factor
from searchmind.domain.models.memory_records import MemoryRecord, MemoryType, ScoredMemory, utcnow

logger = structlog.get_logger(__name__)


class MemoryStore(ABC):
    """Persistence boundary for institutional memory"""

    @abstractmethod
    async def insert(self, record: MemoryRecord) -> str:
        pass

    @abstractmethod
    async def get(self, memory_id: str) -> Optional[MemoryRecord]:
        pass

    @abstractmethod
    async def query(
        self,
        embedding: List[float],
        min_score: float = 0.5,
        limit: int = 5,
        property_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[ScoredMemory]:
        """Hybrid similarity search scoped to one property"""
        pass

    @abstractmethod
    async def touch(self, memory_id: str) -> None:
        pass

    @abstractmethod
    async def update(
        self,
        memory_id: str,
        importance_weight: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[MemoryRecord]:
        pass

    @abstractmethod
    async def delete(self, memory_ids: List[str]) -> int:
        pass

    @abstractmethod
    async def recent(self, memory_type: MemoryType, limit: int) -> List[MemoryRecord]:
        pass

    @abstractmethod
    async def find_similar(self, record: MemoryRecord, threshold: float) -> List[Tuple[MemoryRecord, float]]:
        """Other records of the same property and type above a cosine threshold"""
        pass

    @abstractmethod
    async def scan(self, predicate: Callable[[MemoryRecord], bool]) -> List[MemoryRecord]:
        pass

    @abstractmethod
    async def count(self, property_id: Optional[str] = None, memory_type: Optional[MemoryType] = None) -> int:
        pass


class InMemoryMemoryStore(MemoryStore):
    """Process-local memory store guarded by an asyncio lock"""

    def __init__(self):
        self.records: Dict[str, MemoryRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: MemoryRecord) -> str:
        async with self._lock:
            self.records[record.id] = record.model_copy(deep=True)
        logger.debug("Memory inserted", memory_id=record.id, property_id=record.property_id)
        return record.id

    async def get(self, memory_id: str) -> Optional[MemoryRecord]:
        async with self._lock:
            record = self.records.get(memory_id)
            return record.model_copy(deep=True) if record else None

    async def query(
        self,
        embedding: List[float],
        min_score: float = 0.5,
        limit: int = 5,
        property_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[ScoredMemory]:
        now = now or utcnow()
        async with self._lock:
            candidates = [r for r in self.records.values() if r.property_id == property_id]

        hits = []
        for record in candidates:
            similarity = cosine_similarity(embedding, record.embedding)
            recency = recency_factor(record.created_at, now)
            score = hybrid_score(similarity, recency)
            if score > min_score:
                hits.append(ScoredMemory(
                    record=record.model_copy(deep=True),
                    similarity=similarity,
                    recency=recency,
                    score=score,
                ))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    async def touch(self, memory_id: str) -> None:
        async with self._lock:
            record = self.records.get(memory_id)
            if record is None:
                return
            record.access_count += 1
            record.last_accessed = utcnow()

    async def update(
        self,
        memory_id: str,
        importance_weight: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[MemoryRecord]:
        async with self._lock:
            record = self.records.get(memory_id)
            if record is None:
                return None
            if importance_weight is not None:
                record.importance_weight = importance_weight
            if metadata is not None:
                record.metadata = dict(metadata)
            return record.model_copy(deep=True)

    async def delete(self, memory_ids: List[str]) -> int:
        removed = 0
        async with self._lock:
            for memory_id in memory_ids:
                if self.records.pop(memory_id, None) is not None:
                    removed += 1
        return removed

    async def recent(self, memory_type: MemoryType, limit: int) -> List[MemoryRecord]:
        async with self._lock:
            matching = [r for r in self.records.values() if r.memory_type == memory_type]
        matching.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in matching[:limit]]

    async def find_similar(self, record: MemoryRecord, threshold: float) -> List[Tuple[MemoryRecord, float]]:
        async with self._lock:
            peers = [
                r for r in self.records.values()
                if r.id != record.id
                and r.property_id == record.property_id
                and r.memory_type == record.memory_type
            ]

        similar = []
        for peer in peers:
            similarity = cosine_similarity(record.embedding, peer.embedding)
            if similarity > threshold:
                similar.append((peer.model_copy(deep=True), similarity))
        return similar

    async def scan(self, predicate: Callable[[MemoryRecord], bool]) -> List[MemoryRecord]:
        async with self._lock:
            return [r.model_copy(deep=True) for r in self.records.values() if predicate(r)]

    async def count(self, property_id: Optional[str] = None, memory_type: Optional[MemoryType] = None) -> int:
        async with self._lock:
            return sum(
                1 for r in self.records.values()
                if (property_id is None or r.property_id == property_id)
                and (memory_type is None or r.memory_type == memory_type)
            )
