from typing import Dict, List, Any, Optional
import asyncio

import structlog

from searchmind.domain.models.memory_records import ActionRecord, utcnow

logger = structlog.get_logger(__name__)


class ActionLog:
    """Append-only record of strategies agents carried out"""

    def __init__(self):
        self.actions: Dict[str, ActionRecord] = {}
        self._lock = asyncio.Lock()

    async def record(self, action: ActionRecord) -> str:
        async with self._lock:
            self.actions[action.id] = action.model_copy(deep=True)
        logger.info(
            "Action recorded",
            action_id=action.id,
            action_type=action.action_type,
            agent_type=action.agent_type,
            property_id=action.property_id,
        )
        return action.id

    async def record_impact(
        self,
        action_id: str,
        success_score: float,
        measured_impact: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActionRecord]:
        """Attach a measured outcome to an action; the only permitted mutation"""
        if not 0.0 <= success_score <= 1.0:
            raise ValueError("success_score must be within [0, 1]")
        async with self._lock:
            action = self.actions.get(action_id)
            if action is None:
                return None
            action.success_score = success_score
            action.measured_impact = measured_impact
            action.impact_measured_at = utcnow()
            return action.model_copy(deep=True)

    async def get(self, action_id: str) -> Optional[ActionRecord]:
        async with self._lock:
            action = self.actions.get(action_id)
            return action.model_copy(deep=True) if action else None

    async def qualifying(self, min_score: float) -> List[ActionRecord]:
        """Actions whose measured success score exceeds min_score"""
        async with self._lock:
            return [
                a.model_copy(deep=True) for a in self.actions.values()
                if a.success_score is not None and a.success_score > min_score
            ]

    async def list(self, property_id: Optional[str] = None) -> List[ActionRecord]:
        async with self._lock:
            actions = [
                a.model_copy(deep=True) for a in self.actions.values()
                if property_id is None or a.property_id == property_id
            ]
        actions.sort(key=lambda a: a.executed_at, reverse=True)
        return actions
