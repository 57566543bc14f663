from typing import Annotated, Any, Dict, Optional
from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from uuid import uuid4
import time

import structlog

from searchmind.application.container import Services, get_services
from searchmind.application.websocket.schema.events import TurnResponse
from searchmind.domain.consolidation.sleep_cycle import SleepCycleReport
from searchmind.domain.models.memory_records import ActionRecord, new_id, utcnow
from searchmind.domain.models.search_data import PropertyRecord
from searchmind.domain.sync.data_sync import SyncResult
from searchmind.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

router = APIRouter()

SESSION_TTL_SECONDS = 3600


class ChatRequest(BaseModel):
    """A single user turn submitted over REST"""
    message: str = Field(min_length=1)
    property_id: Optional[str] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None


class SessionCreateRequest(BaseModel):
    property_id: str


class RegisterPropertyRequest(BaseModel):
    site_url: str = Field(min_length=1)
    user_id: Optional[str] = None
    id: Optional[str] = None


class SyncRequest(BaseModel):
    days: Optional[int] = Field(None, ge=1, le=90)
    lag_days: Optional[int] = Field(None, ge=0)


class ImpactRequest(BaseModel):
    success_score: float = Field(ge=0.0, le=1.0)
    measured_impact: Optional[Dict[str, Any]] = None


def _turn_events(services: Services, request: ChatRequest, session_id: str):
    return services.orchestrator.process_message(
        session_id,
        request.message,
        property_id=request.property_id,
        user_id=request.user_id,
    )


@router.post("/api/v1/agent/chat", response_model=TurnResponse)
async def chat_endpoint(request: ChatRequest, services: Annotated[Services, Depends(get_services)]):
    """Run a whole turn and return the gathered routing plan and results"""
    session_id = request.session_id or str(uuid4())
    return await services.streaming.collect(session_id, _turn_events(services, request, session_id))


@router.post("/api/v1/agent/chat/stream")
async def chat_stream_endpoint(request: ChatRequest, services: Annotated[Services, Depends(get_services)]):
    """Run a turn, streaming its events as Server-Sent Events"""
    session_id = request.session_id or str(uuid4())
    return StreamingResponse(
        services.streaming.sse(_turn_events(services, request, session_id)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/api/v1/agent/session/create")
async def create_session(request: SessionCreateRequest):
    session_id = str(uuid4())
    return {
        "session_id": session_id,
        "websocket_url": f"/ws/agent/{request.property_id}/{session_id}",
        "expires_at": time.time() + SESSION_TTL_SECONDS,
    }


@router.post("/api/v1/memory/sleep-cycle", response_model=SleepCycleReport)
async def run_sleep_cycle(services: Annotated[Services, Depends(get_services)]):
    """Run consolidation, promotion and garbage collection now"""
    report = await services.sleep_cycle.run()
    services.scheduler.last_report = report
    return report


@router.post("/api/v1/properties", response_model=PropertyRecord, status_code=201)
async def register_property(request: RegisterPropertyRequest, services: Annotated[Services, Depends(get_services)]):
    record = PropertyRecord(id=request.id or new_id(), site_url=request.site_url, user_id=request.user_id)
    logger.info("Registering property", property_id=record.id, site_url=record.site_url)
    return await services.analytics_store.register_property(record)


@router.post("/api/v1/properties/{property_id}/sync", response_model=SyncResult)
async def sync_property(
    property_id: str,
    services: Annotated[Services, Depends(get_services)],
    request: Optional[SyncRequest] = None,
):
    if await services.analytics_store.get_property(property_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown property '{property_id}'")
    request = request or SyncRequest()
    return await services.data_sync.run(property_id, days=request.days, lag_days=request.lag_days)


@router.post("/api/v1/actions/{action_id}/impact", response_model=ActionRecord)
async def record_action_impact(
    action_id: str,
    request: ImpactRequest,
    services: Annotated[Services, Depends(get_services)],
):
    """Attach a measured outcome to a logged action"""
    action = await services.action_log.record_impact(action_id, request.success_score, request.measured_impact)
    if action is None:
        raise HTTPException(status_code=404, detail=f"Unknown action '{action_id}'")
    return action


@router.get("/health")
async def health_check(services: Annotated[Services, Depends(get_services)]):
    """Health check endpoint"""
    last_report = services.scheduler.last_report
    return {
        "status": "healthy",
        "active_connections": len(services.connection_manager.get_active_sessions()),
        "agents": [kind.value for kind in services.registry.kinds()],
        "last_sleep_cycle": last_report.model_dump(mode="json") if last_report else None,
        "metrics": metrics.get_metrics_summary(),
        "timestamp": utcnow().isoformat(),
    }
