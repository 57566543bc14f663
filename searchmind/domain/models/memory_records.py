from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class MemoryType(str, Enum):
    """Kind of stored memory"""
    EPISODIC = "EPISODIC"
    SEMANTIC = "SEMANTIC"


BRAND_PROTECTED_WEIGHT = 1.0


class MemoryRecord(BaseModel):
    """A single stored observation with its embedding"""
    id: str = Field(default_factory=new_id)
    property_id: Optional[str] = Field(None, description="Tenant scope; None for global")
    memory_type: MemoryType = Field(default=MemoryType.EPISODIC)
    content: str
    embedding: List[float] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    importance_weight: float = Field(0.5, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utcnow)
    last_accessed: Optional[datetime] = None
    access_count: int = Field(0, ge=0)

    @property
    def brand_protected(self) -> bool:
        return self.importance_weight == BRAND_PROTECTED_WEIGHT


class ScoredMemory(BaseModel):
    """A retrieval hit with its hybrid score components"""
    record: MemoryRecord
    similarity: float
    recency: float
    score: float


class ActionRecord(BaseModel):
    """A strategy an agent carried out, used as evidence for promotion"""
    id: str = Field(default_factory=new_id)
    property_id: Optional[str] = None
    agent_type: str
    action_type: str = Field(description="Free-form strategy identifier")
    context_summary: Optional[str] = Field(None, description="Fingerprint of the situation")
    action_details: Dict[str, Any] = Field(default_factory=dict)
    success_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    measured_impact: Optional[Dict[str, Any]] = None
    executed_at: datetime = Field(default_factory=utcnow)
    impact_measured_at: Optional[datetime] = None


class SkillRecord(BaseModel):
    """A promoted, reusable strategy"""
    id: str = Field(default_factory=new_id)
    property_id: Optional[str] = Field(None, description="None for a global skill")
    strategy_name: str
    description: str = ""
    context_pattern: str = "General Context"
    action_steps: List[Any] = Field(default_factory=list)
    success_rate: float = Field(0.0, ge=0.0, le=1.0)
    times_applied: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    source_action_ids: List[str] = Field(default_factory=list)
    promoted_at: datetime = Field(default_factory=utcnow)
    last_used: Optional[datetime] = None
