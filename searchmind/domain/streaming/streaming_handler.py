from typing import AsyncIterator, Optional
import json
import structlog

from searchmind.application.websocket.connection_manager import ConnectionManager
from searchmind.application.websocket.schema.events import (
    AgentResultEvent,
    BaseEvent,
    ErrorEvent,
    RoutingEvent,
    TurnResponse,
)

logger = structlog.get_logger(__name__)


def format_sse(event: BaseEvent) -> str:
    """Render an event as a Server-Sent Events frame"""
    return f"data: {json.dumps(event.model_dump(mode='json'))}\n\n"


class StreamingHandler:
    """Delivers turn events to WebSocket sessions, SSE responses or a gathered response"""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        self.connection_manager = connection_manager

    async def stream_to_session(self, session_id: str, events: AsyncIterator[BaseEvent]) -> bool:
        """Forward events to a WebSocket session; False once the client has gone"""
        if self.connection_manager is None:
            raise RuntimeError("No connection manager configured")
        try:
            async for event in events:
                event.session_id = session_id
                if not await self.connection_manager.send_event(session_id, event):
                    logger.info("Client gone, abandoning turn stream", session_id=session_id)
                    return False
            return True
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    async def sse(self, events: AsyncIterator[BaseEvent]) -> AsyncIterator[str]:
        async for event in events:
            yield format_sse(event)

    async def collect(self, session_id: str, events: AsyncIterator[BaseEvent]) -> TurnResponse:
        """Gather a turn's events into one response"""
        response = TurnResponse(session_id=session_id)
        async for event in events:
            if isinstance(event, RoutingEvent):
                response.routing = event.payload
            elif isinstance(event, AgentResultEvent):
                response.results.append(event.payload)
            elif isinstance(event, ErrorEvent):
                response.error = {**event.payload, "error_code": event.error_code}
        return response
