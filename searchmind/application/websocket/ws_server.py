from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Optional, Set
import asyncio
import json
import uuid
import structlog

from searchmind.application.container import Services, get_services
from .schema.events import EventType, StatusEvent, UserMessage

logger = structlog.get_logger(__name__)

router = APIRouter()

# Turns keep running briefly after a disconnect; hold references until they finish
_running_turns: Set[asyncio.Task] = set()


@router.websocket("/ws/agent/{property_id}/{session_id}")
async def agent_websocket(websocket: WebSocket, property_id: str, session_id: str):
    """Main WebSocket endpoint for agent interaction"""

    try:
        uuid.UUID(session_id)
    except ValueError:
        await websocket.close(code=1008, reason="Invalid session ID format")
        return

    services = get_services(websocket)
    connection_manager = services.connection_manager
    await connection_manager.connect(websocket, session_id, property_id)

    cancel_event = asyncio.Event()
    turn: Optional[asyncio.Task] = None

    try:
        await connection_manager.send_event(session_id, StatusEvent(payload="Agent ready"))

        while True:
            raw = await websocket.receive_text()

            try:
                data = json.loads(raw)
                if data.get("type") != EventType.USER_MESSAGE.value:
                    await connection_manager.send_error(
                        session_id, f"Unsupported event type: {data.get('type')}", "UNSUPPORTED_EVENT"
                    )
                    continue
                user_message = UserMessage(**data)
            except (json.JSONDecodeError, AttributeError, ValidationError) as e:
                await connection_manager.send_error(session_id, f"Invalid message: {e}", "INVALID_MESSAGE")
                continue

            if turn is not None and not turn.done():
                await connection_manager.send_error(session_id, "A turn is already in progress", "TURN_IN_PROGRESS")
                continue

            turn = asyncio.create_task(
                process_user_message(services, session_id, property_id, user_message, cancel_event)
            )
            _running_turns.add(turn)
            turn.add_done_callback(_running_turns.discard)

    except WebSocketDisconnect:
        logger.info("Client disconnected", session_id=session_id)
    except Exception as e:
        logger.error("WebSocket error", error=str(e), session_id=session_id)
    finally:
        cancel_event.set()
        await connection_manager.disconnect(session_id)


async def process_user_message(
    services: Services,
    session_id: str,
    property_id: str,
    message: UserMessage,
    cancel_event: asyncio.Event,
):
    """Stream one turn's events back over the session"""
    events = services.orchestrator.process_message(
        session_id,
        message.content,
        property_id=property_id,
        user_id=message.user_id,
        cancel_event=cancel_event,
    )
    delivered = await services.streaming.stream_to_session(session_id, events)
    if not delivered:
        cancel_event.set()
