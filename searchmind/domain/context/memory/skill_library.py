from typing import Dict, List, Optional
import asyncio

from searchmind.domain.models.memory_records import SkillRecord


class SkillLibrary:
    """Promoted strategies, keyed by strategy name"""

    def __init__(self):
        self.skills: Dict[str, SkillRecord] = {}
        self._lock = asyncio.Lock()

    async def get_by_strategy(self, strategy_name: str) -> Optional[SkillRecord]:
        async with self._lock:
            for skill in self.skills.values():
                if skill.strategy_name == strategy_name:
                    return skill.model_copy(deep=True)
        return None

    async def create(self, skill: SkillRecord) -> SkillRecord:
        async with self._lock:
            if any(s.strategy_name == skill.strategy_name for s in self.skills.values()):
                raise ValueError(f"Skill '{skill.strategy_name}' already exists")
            self.skills[skill.id] = skill.model_copy(deep=True)
        return skill

    async def update(self, skill: SkillRecord) -> SkillRecord:
        async with self._lock:
            if skill.id not in self.skills:
                raise KeyError(skill.id)
            self.skills[skill.id] = skill.model_copy(deep=True)
        return skill

    async def recent(self, limit: int = 5, property_id: Optional[str] = None) -> List[SkillRecord]:
        """Skills for the property plus global skills, newest promotion first"""
        async with self._lock:
            visible = [
                s.model_copy(deep=True) for s in self.skills.values()
                if s.property_id is None or s.property_id == property_id
            ]
        visible.sort(key=lambda s: s.promoted_at, reverse=True)
        return visible[:limit]

    async def count(self, property_id: Optional[str] = None) -> int:
        async with self._lock:
            return sum(
                1 for s in self.skills.values()
                if property_id is None or s.property_id is None or s.property_id == property_id
            )
