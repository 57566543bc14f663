from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar
import json
import time

import structlog
from langchain.chat_models import init_chat_model
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from searchmind.infrastructure.observability.langfuse_tracing import traced
from searchmind.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class Generation(BaseModel):
    """Final text of an inference call plus the tool calls it made"""
    text: str
    steps: List[Dict[str, Any]] = Field(default_factory=list)


def create_chat_model(model: str, **kwargs: Any) -> BaseChatModel:
    """Build a chat model from a provider:model identifier"""
    return init_chat_model(model, **kwargs)


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class InferenceClient:
    """Text and structured generation with a bounded tool-call loop"""

    def __init__(self, chat_model: BaseChatModel, max_tool_rounds: int = 5):
        self.chat_model = chat_model
        self.max_tool_rounds = max_tool_rounds

    @traced("llm.generate")
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[Sequence[BaseTool]] = None,
        native_tools: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> Generation:
        """Generate text, executing tool calls for at most max_tool_rounds rounds.

        ``native_tools`` are provider-side tools (e.g. search grounding) that are
        bound to the model but never executed locally.
        """
        start_time = time.time()
        messages: List[BaseMessage] = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        tools = list(tools or [])
        bindable = [*tools, *(native_tools or [])]

        if not bindable:
            response = await self.chat_model.ainvoke(messages)
            metrics.record_latency("llm.generate", (time.time() - start_time) * 1000)
            return Generation(text=message_text(response))

        model = self.chat_model.bind_tools(bindable)
        by_name = {tool.name: tool for tool in tools}
        steps: List[Dict[str, Any]] = []

        for _ in range(self.max_tool_rounds):
            response = await model.ainvoke(messages)
            messages.append(response)
            tool_calls = response.tool_calls if isinstance(response, AIMessage) else []
            if not tool_calls:
                metrics.record_latency("llm.generate", (time.time() - start_time) * 1000)
                return Generation(text=message_text(response), steps=steps)

            for call in tool_calls:
                result = await self._run_tool(by_name.get(call["name"]), call["name"], call["args"])
                steps.append({"tool": call["name"], "args": call["args"], "result": result})
                messages.append(ToolMessage(
                    content=json.dumps(result, default=str),
                    tool_call_id=call["id"],
                    name=call["name"],
                ))

        logger.warning("Tool round budget exhausted", max_tool_rounds=self.max_tool_rounds)
        response = await self.chat_model.ainvoke(messages)
        metrics.record_latency("llm.generate", (time.time() - start_time) * 1000)
        return Generation(text=message_text(response), steps=steps)

    @traced("llm.generate_structured")
    async def generate_structured(self, system_prompt: str, user_prompt: str, schema: Type[T]) -> T:
        """Generate an instance of ``schema``; raises when the output cannot be parsed"""
        runnable = self.chat_model.with_structured_output(schema)
        result = await runnable.ainvoke([SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)])
        if result is None:
            raise ValueError(f"Model returned no {schema.__name__}")
        if isinstance(result, dict):
            return schema.model_validate(result)
        return result

    async def _run_tool(self, tool: Optional[BaseTool], name: str, args: Dict[str, Any]) -> Any:
        if tool is None:
            return {"error": f"Unknown tool '{name}'"}

        start_time = time.time()
        try:
            return await tool.ainvoke(args)
        except Exception as e:
            agent_logger.log_tool_execution(
                tool_name=name,
                property_id=None,
                input_data=args,
                duration_ms=(time.time() - start_time) * 1000,
                success=False,
                error=str(e),
            )
            return {"error": str(e)}
