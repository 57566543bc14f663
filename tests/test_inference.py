import asyncio

import pytest
from conftest import FakeEmbeddings, scripted_model
from langchain_core.messages import AIMessage
from langchain_core.tools import StructuredTool
from pydantic import BaseModel

from searchmind.domain.models.agent_state import AgentKind, ExecutionMode, RoutingPlan
from searchmind.infrastructure.llm.embeddings import EmbeddingService
from searchmind.infrastructure.llm.inference import InferenceClient, message_text


class EchoArgs(BaseModel):
    text: str


async def echo(text: str):
    return {"echoed": text}


async def explode(text: str):
    raise RuntimeError("tool crashed")


def tool(coroutine, name="echo"):
    return StructuredTool.from_function(coroutine=coroutine, name=name, description="Echo text", args_schema=EchoArgs)


def tool_call(name="echo", text="hi", call_id="call-1"):
    return AIMessage(content="", tool_calls=[{"name": name, "args": {"text": text}, "id": call_id}])


def test_plain_generation():
    client = InferenceClient(scripted_model(AIMessage(content="plain answer")))
    generation = asyncio.run(client.generate("system", "user"))
    assert generation.text == "plain answer"
    assert generation.steps == []


def test_tool_calls_are_executed_and_recorded():
    client = InferenceClient(scripted_model(tool_call(), AIMessage(content="final")))

    generation = asyncio.run(client.generate("system", "user", tools=[tool(echo)]))

    assert generation.text == "final"
    assert generation.steps == [{"tool": "echo", "args": {"text": "hi"}, "result": {"echoed": "hi"}}]


def test_unknown_and_failing_tools_become_error_results():
    client = InferenceClient(scripted_model(
        tool_call(name="missing", call_id="call-1"),
        tool_call(name="echo", call_id="call-2"),
        AIMessage(content="recovered"),
    ))

    generation = asyncio.run(client.generate("system", "user", tools=[tool(explode)]))

    assert generation.text == "recovered"
    assert generation.steps[0]["result"] == {"error": "Unknown tool 'missing'"}
    assert generation.steps[1]["result"] == {"error": "tool crashed"}


def test_round_budget_forces_a_final_answer():
    client = InferenceClient(
        scripted_model(tool_call(call_id="call-1"), AIMessage(content="out of budget answer")),
        max_tool_rounds=1,
    )
    generation = asyncio.run(client.generate("system", "user", tools=[tool(echo)]))
    assert generation.text == "out of budget answer"
    assert len(generation.steps) == 1


def test_structured_generation_parses_the_schema_call():
    plan = {
        "classification": "TECHNICAL_AUDIT",
        "primary_agent": "AUDITOR",
        "secondary_agents": [],
        "execution_mode": "SINGLE",
        "reasoning": "indexing question",
        "next_steps": [],
    }
    model = scripted_model(AIMessage(content="", tool_calls=[{"name": "RoutingPlan", "args": plan, "id": "call-1"}]))

    result = asyncio.run(InferenceClient(model).generate_structured("system", "is it indexed?", RoutingPlan))

    assert isinstance(result, RoutingPlan)
    assert result.primary_agent == AgentKind.AUDITOR
    assert result.execution_mode == ExecutionMode.SINGLE


def test_message_text_joins_content_parts():
    message = AIMessage(content=[{"type": "text", "text": "a"}, "b", {"type": "image_url", "image_url": "x"}])
    assert message_text(message) == "ab"


class TestEmbeddingService:
    def test_newlines_are_replaced(self):
        embeddings = FakeEmbeddings()
        service = EmbeddingService(embeddings, dimensions=3)

        asyncio.run(service.embed("line one\nline two"))
        asyncio.run(service.embed_many(["a\nb"]))

        assert embeddings.seen == ["line one line two", "a b"]

    def test_dimension_mismatch(self):
        service = EmbeddingService(FakeEmbeddings(default=[1.0, 0.0]), dimensions=3)
        with pytest.raises(ValueError):
            asyncio.run(service.embed("text"))
