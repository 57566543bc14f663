from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class AgentKind(str, Enum):
    """Registered reasoning agents"""
    ANALYST = "ANALYST"
    AUDITOR = "AUDITOR"
    RESEARCH = "RESEARCH"
    OPTIMIZER = "OPTIMIZER"
    PLANNER = "PLANNER"
    MEMORY = "MEMORY"
    ASSISTANT = "ASSISTANT"


class Classification(str, Enum):
    """Intent labels produced by the router"""
    ANALYTICS_QUERY = "ANALYTICS_QUERY"
    TECHNICAL_AUDIT = "TECHNICAL_AUDIT"
    CONTENT_RESEARCH = "CONTENT_RESEARCH"
    OPTIMIZATION = "OPTIMIZATION"
    PLANNING = "PLANNING"
    MEMORY_QUERY = "MEMORY_QUERY"
    GENERAL_CHAT = "GENERAL_CHAT"
    COMPLEX_TASK = "COMPLEX_TASK"


class ExecutionMode(str, Enum):
    """Concurrency discipline for running a plan's agents"""
    SINGLE = "SINGLE"
    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"


class RoutingPlan(BaseModel):
    """The router's decision about which agents handle a turn and how"""
    model_config = ConfigDict(frozen=True)

    classification: Classification = Field(description="Intent classification of the user request")
    primary_agent: AgentKind = Field(description="Agent that handles the request first")
    secondary_agents: List[AgentKind] = Field(
        default_factory=list,
        description="Further agents, in execution order, for compound requests"
    )
    execution_mode: ExecutionMode = Field(default=ExecutionMode.SINGLE)
    reasoning: str = Field(description="Brief explanation of why this routing was chosen")
    next_steps: List[str] = Field(default_factory=list, description="List of sub-tasks to execute")

    @property
    def planned_agents(self) -> List[AgentKind]:
        """Agents the engine will invoke for this plan, in plan order"""
        if self.execution_mode == ExecutionMode.SINGLE:
            return [self.primary_agent]
        return [self.primary_agent, *self.secondary_agents]


class AgentResult(BaseModel):
    """Output of a single agent invocation"""
    agent: AgentKind
    output: str
    data: Optional[Any] = None
    steps: Optional[List[Dict[str, Any]]] = None


class PropertyContext(BaseModel):
    """Summary of the active property shown to the router"""
    url: str
    total_clicks: int = 0
    declining_pages: int = 0


class AgentContext(BaseModel):
    """Context handed to every agent invocation"""
    property_id: Optional[str] = Field(None, description="Tenant scope of the turn")
    url: Optional[str] = Field(None, description="Site URL of the property")
    user_id: Optional[str] = Field(None, description="Owner of the property credentials")
    session_id: Optional[str] = None
    total_clicks: Optional[int] = None
    diagnostics: Dict[str, Any] = Field(default_factory=dict, description="Prior technical findings")
    analysis: Dict[str, Any] = Field(default_factory=dict, description="Prior performance findings")
    constraints: Dict[str, Any] = Field(default_factory=dict, description="Planner resource constraints")
    memory_context: str = Field("", description="Retrieved institutional memory")
    metadata: Dict[str, Any] = Field(default_factory=dict)
