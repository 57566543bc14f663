from typing import Dict, Set, Optional
from fastapi import WebSocket
import asyncio
import structlog

from searchmind.domain.models.memory_records import utcnow
from searchmind.infrastructure.observability.logging import metrics
from .schema.events import BaseEvent, ConnectionEvent, ErrorEvent

logger = structlog.get_logger(__name__)

STALE_AFTER_SECONDS = 300
HEALTH_CHECK_INTERVAL_SECONDS = 60


class ConnectionManager:
    """Manages WebSocket connections and message routing"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.session_metadata: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str, property_id: str):
        """Accept a new WebSocket connection"""
        await websocket.accept()

        async with self._lock:
            self.active_connections[session_id] = websocket
            self.session_metadata[session_id] = {
                "property_id": property_id,
                "connected_at": utcnow(),
                "last_activity": utcnow(),
            }
            metrics.set_gauge("websocket.active_connections", len(self.active_connections))

        await self.send_event(session_id, ConnectionEvent(status="connected", session_id=session_id))

        logger.info("WebSocket connected", session_id=session_id, property_id=property_id)

    async def disconnect(self, session_id: str):
        """Disconnect a WebSocket connection"""
        async with self._lock:
            ws = self.active_connections.pop(session_id, None)
            self.session_metadata.pop(session_id, None)
            metrics.set_gauge("websocket.active_connections", len(self.active_connections))

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("WebSocket already closed", session_id=session_id, error=str(e))
            logger.info("WebSocket disconnected", session_id=session_id)

    async def send_event(self, session_id: str, event: BaseEvent) -> bool:
        """Send an event to a specific session"""
        websocket = self.active_connections.get(session_id)
        if websocket is None:
            logger.warning("Attempted to send to disconnected session", session_id=session_id)
            return False

        try:
            await websocket.send_json(event.model_dump(mode="json"))
        except Exception as e:
            logger.error("Failed to send event", session_id=session_id, error=str(e))
            await self.disconnect(session_id)
            return False

        if session_id in self.session_metadata:
            self.session_metadata[session_id]["last_activity"] = utcnow()
        return True

    async def send_error(self, session_id: str, error_message: str, error_code: Optional[str] = None):
        """Send an error event to a session"""
        error_event = ErrorEvent(
            payload={"message": error_message},
            error_code=error_code,
            session_id=session_id,
        )
        await self.send_event(session_id, error_event)

    def get_active_sessions(self, property_id: Optional[str] = None) -> Set[str]:
        """Get active session IDs, optionally filtered by property"""
        if property_id:
            return {
                session_id
                for session_id, metadata in self.session_metadata.items()
                if metadata.get("property_id") == property_id
            }
        return set(self.active_connections.keys())

    async def close_all(self):
        for session_id in list(self.active_connections.keys()):
            await self.disconnect(session_id)

    async def health_check(self):
        """Periodic health check to clean up stale connections"""
        while True:
            try:
                current_time = utcnow()
                stale_sessions = [
                    session_id
                    for session_id, metadata in list(self.session_metadata.items())
                    if metadata.get("last_activity")
                    and (current_time - metadata["last_activity"]).total_seconds() > STALE_AFTER_SECONDS
                ]

                for session_id in stale_sessions:
                    logger.warning("Disconnecting stale session", session_id=session_id)
                    await self.disconnect(session_id)

            except Exception as e:
                logger.error("Health check error", error=str(e))

            await asyncio.sleep(HEALTH_CHECK_INTERVAL_SECONDS)
