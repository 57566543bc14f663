import asyncio
import itertools
from typing import Any, Dict, List, Optional

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage

from searchmind.domain.models.agent_state import (
    AgentContext,
    AgentKind,
    AgentResult,
    Classification,
    ExecutionMode,
    RoutingPlan,
)
from searchmind.domain.orchestration.subagent.base_subagent import BaseSubAgent
from searchmind.infrastructure.config.settings import Settings
from searchmind.infrastructure.llm.inference import Generation

VECTOR_SIZE = 3


class ScriptedChatModel(GenericFakeChatModel):
    """Fake chat model replaying scripted messages; tools are accepted and ignored"""

    def bind_tools(self, tools, **kwargs):
        return self


def scripted_model(*messages) -> ScriptedChatModel:
    return ScriptedChatModel(messages=iter(messages))


def repeating_model(text: str = "ok") -> ScriptedChatModel:
    return ScriptedChatModel(messages=itertools.repeat(AIMessage(content=text)))


class FakeEmbeddings(Embeddings):
    """Embeds every text to a fixed vector unless an explicit mapping is given"""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default: Optional[List[float]] = None):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.seen: List[str] = []

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_query(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        self.seen.append(text)
        return list(self.vectors.get(text, self.default))


class FailingEmbeddings(Embeddings):
    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError("embedding backend down")

    def embed_query(self, text: str) -> List[float]:
        raise RuntimeError("embedding backend down")


class FakeInference:
    """Stands in for InferenceClient; records prompts and returns canned output"""

    def __init__(self, text: str = "done", plan: Any = None, error: Optional[Exception] = None):
        self.text = text
        self.plan = plan
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, system_prompt, user_prompt, tools=None, native_tools=None) -> Generation:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "tools": list(tools or []),
            "native_tools": list(native_tools or []),
        })
        if self.error:
            raise self.error
        return Generation(text=self.text)

    async def generate_structured(self, system_prompt, user_prompt, schema):
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, "schema": schema})
        if self.error:
            raise self.error
        return self.plan


class StubAgent(BaseSubAgent):
    """Agent with scripted output, delay and failure"""

    def __init__(self, kind: AgentKind, output: str = "", delay: float = 0.0, error: Optional[Exception] = None):
        super().__init__()
        self.kind = kind
        self.failure_label = f"{kind.value} failed"
        self.output = output or f"{kind.value} output"
        self.delay = delay
        self.error = error
        self.messages: List[str] = []

    async def run(self, message: str, context: AgentContext) -> AgentResult:
        self.messages.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return AgentResult(agent=self.kind, output=self.output)


def make_plan(
    primary: AgentKind = AgentKind.ANALYST,
    secondary: Optional[List[AgentKind]] = None,
    mode: ExecutionMode = ExecutionMode.SINGLE,
    classification: Classification = Classification.ANALYTICS_QUERY,
) -> RoutingPlan:
    return RoutingPlan(
        classification=classification,
        primary_agent=primary,
        secondary_agents=secondary or [],
        execution_mode=mode,
        reasoning="test plan",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        sleep_cycle_enabled=False,
        embedding_dimensions=VECTOR_SIZE,
        log_format="console",
    )


@pytest.fixture
def context() -> AgentContext:
    return AgentContext(property_id="prop-1", url="https://example.com/", user_id="user-1", session_id="s-1")
