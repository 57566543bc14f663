from typing import Dict, Any, Optional, List, Literal, Union
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from searchmind.domain.models.agent_state import AgentResult, RoutingPlan
from searchmind.domain.models.memory_records import utcnow


class EventType(str, Enum):
    """Stream event types"""
    STATUS = "status"
    ROUTING = "routing"
    AGENT_RESULT = "agent_result"
    ERROR = "error"
    CONNECTION = "connection"
    USER_MESSAGE = "user_message"


class BaseEvent(BaseModel):
    """Base event model for all streamed messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=utcnow)
    session_id: Optional[str] = None


class StatusEvent(BaseEvent):
    """Free-text progress message"""
    type: Literal[EventType.STATUS] = EventType.STATUS
    payload: str


class RoutingEvent(BaseEvent):
    """The routing plan computed for the turn"""
    type: Literal[EventType.ROUTING] = EventType.ROUTING
    payload: RoutingPlan


class AgentResultEvent(BaseEvent):
    """One agent's result"""
    type: Literal[EventType.AGENT_RESULT] = EventType.AGENT_RESULT
    payload: AgentResult


class ErrorEvent(BaseEvent):
    """Terminal failure of a turn"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected", "reconnecting"]


class UserMessage(BaseEvent):
    """User message event"""
    type: Literal[EventType.USER_MESSAGE] = EventType.USER_MESSAGE
    content: str = Field(min_length=1)
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


TurnEvent = Union[StatusEvent, RoutingEvent, AgentResultEvent, ErrorEvent]


class TurnResponse(BaseModel):
    """A whole turn gathered into one response"""
    session_id: Optional[str] = None
    routing: Optional[RoutingPlan] = None
    results: List[AgentResult] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
