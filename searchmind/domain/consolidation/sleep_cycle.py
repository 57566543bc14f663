from typing import Dict, List, Any, Optional
from collections import defaultdict
from datetime import datetime, timedelta
import asyncio
import time

import structlog
from pydantic import BaseModel, Field

from searchmind.domain.context.memory.action_log import ActionLog
from searchmind.domain.context.memory.memory_store import MemoryStore
from searchmind.domain.context.memory.skill_library import SkillLibrary
from searchmind.domain.models.memory_records import ActionRecord, MemoryRecord, MemoryType, SkillRecord, utcnow
from searchmind.infrastructure.config.settings import Settings
from searchmind.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

PROMOTION_TAG = "auto-promoted"


class SleepCycleReport(BaseModel):
    """Counts produced by one consolidation run"""
    merged: int = 0
    promoted: int = 0
    skills_updated: int = 0
    deleted: int = 0
    errors: Dict[str, str] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utcnow)
    duration_ms: float = 0.0


def _winner_key(record: MemoryRecord):
    # Highest access count, then most recent, then smallest id
    return (-record.access_count, -record.created_at.timestamp(), record.id)


def _action_steps(action: ActionRecord) -> List[Any]:
    steps = action.action_details.get("steps")
    if isinstance(steps, list):
        return list(steps)
    return [action.action_details] if action.action_details else []


class SleepCycle:
    """Periodic consolidation, strategy promotion and garbage collection"""

    def __init__(
        self,
        memory_store: MemoryStore,
        action_log: ActionLog,
        skill_library: SkillLibrary,
        settings: Settings,
    ):
        self.memory_store = memory_store
        self.action_log = action_log
        self.skill_library = skill_library
        self.settings = settings

    async def run(self, now: Optional[datetime] = None) -> SleepCycleReport:
        """Run all three sub-tasks; a failure in one never stops the others"""
        start_time = time.time()
        report = SleepCycleReport()

        try:
            report.merged = await self.consolidate()
        except Exception as e:
            logger.error("Consolidation failed", error=str(e), exc_info=True)
            report.errors["consolidation"] = str(e)

        try:
            report.promoted, report.skills_updated = await self.promote()
        except Exception as e:
            logger.error("Strategy promotion failed", error=str(e), exc_info=True)
            report.errors["promotion"] = str(e)

        try:
            report.deleted = await self.collect_garbage(now)
        except Exception as e:
            logger.error("Garbage collection failed", error=str(e), exc_info=True)
            report.errors["garbage_collection"] = str(e)

        report.duration_ms = (time.time() - start_time) * 1000
        metrics.record_latency("sleep_cycle", report.duration_ms)
        metrics.increment_counter("sleep_cycle.merged", report.merged)
        metrics.increment_counter("sleep_cycle.promoted", report.promoted)
        metrics.increment_counter("sleep_cycle.deleted", report.deleted)

        logger.info(
            "Sleep cycle complete",
            merged=report.merged,
            promoted=report.promoted,
            skills_updated=report.skills_updated,
            deleted=report.deleted,
            failed=list(report.errors),
        )
        return report

    async def consolidate(self) -> int:
        """Merge near-duplicate episodic memories into their most used member"""
        batch = await self.memory_store.recent(MemoryType.EPISODIC, self.settings.consolidation_batch_size)
        removed: set = set()
        merged = 0

        for candidate in batch:
            if candidate.id in removed:
                continue

            # Re-read so the anchor carries current counters; keep merging into
            # the winner until it has no duplicates left
            current = await self.memory_store.get(candidate.id)
            while current is not None and current.embedding:
                duplicates = await self.memory_store.find_similar(
                    current, self.settings.duplicate_similarity_threshold
                )
                if not duplicates:
                    break

                group = [current, *(record for record, _ in duplicates)]
                group.sort(key=_winner_key)
                winner, losers = group[0], group[1:]

                average_weight = sum(m.importance_weight for m in group) / len(group)
                merged_ids = list(winner.metadata.get("merged_ids", []))
                for loser in losers:
                    merged_ids.extend(loser.metadata.get("merged_ids", []))
                    merged_ids.append(loser.id)

                await self.memory_store.update(
                    winner.id,
                    importance_weight=average_weight,
                    metadata={**winner.metadata, "merged_ids": merged_ids},
                )
                loser_ids = [loser.id for loser in losers]
                await self.memory_store.delete(loser_ids)
                removed.update(loser_ids)
                merged += len(losers)

                agent_logger.log_memory_operation(
                    "merge",
                    winner.property_id,
                    count=len(losers),
                    details={"winner_id": winner.id, "merged_ids": loser_ids},
                )
                current = await self.memory_store.get(winner.id)

        return merged

    async def promote(self):
        """Promote repeatedly successful action types into skills; returns (created, updated)"""
        qualifying = await self.action_log.qualifying(self.settings.promotion_success_threshold)

        by_type: Dict[str, List[ActionRecord]] = defaultdict(list)
        for action in qualifying:
            by_type[action.action_type].append(action)

        promoted = 0
        updated = 0
        for action_type in sorted(by_type):
            actions = sorted(by_type[action_type], key=lambda a: (a.executed_at, a.id))
            existing = await self.skill_library.get_by_strategy(action_type)

            if existing is None:
                if len(actions) < self.settings.promotion_min_actions:
                    continue
                trigger = actions[-1]
                skill = SkillRecord(
                    property_id=trigger.property_id,
                    strategy_name=action_type,
                    description=f"Automatically promoted strategy based on {len(actions)} successful executions.",
                    context_pattern=trigger.context_summary or "General Context",
                    action_steps=_action_steps(trigger),
                    success_rate=trigger.success_score,
                    times_applied=len(actions),
                    tags=[PROMOTION_TAG],
                    source_action_ids=[a.id for a in actions],
                )
                await self.skill_library.create(skill)
                promoted += 1
                agent_logger.log_memory_operation(
                    "promote", trigger.property_id, count=len(actions), details={"strategy": action_type}
                )
                continue

            folded = set(existing.source_action_ids)
            fresh = [a for a in actions if a.id not in folded]
            if not fresh:
                continue

            existing.source_action_ids.extend(a.id for a in fresh)
            folded.update(a.id for a in fresh)
            scores = [a.success_score for a in actions if a.id in folded]
            existing.success_rate = min(1.0, sum(scores) / len(scores))
            existing.times_applied += len(fresh)
            await self.skill_library.update(existing)
            updated += 1
            logger.info("Skill statistics updated", strategy=action_type, new_actions=len(fresh))

        return promoted, updated

    async def collect_garbage(self, now: Optional[datetime] = None) -> int:
        """Delete old, unimportant, rarely used memories; brand-protected weights are kept"""
        cutoff = (now or utcnow()) - timedelta(days=self.settings.gc_max_age_days)

        def is_garbage(record: MemoryRecord) -> bool:
            return (
                record.created_at < cutoff
                and record.importance_weight < self.settings.gc_max_importance
                and record.access_count < self.settings.gc_min_access_count
                and not record.brand_protected
            )

        stale = await self.memory_store.scan(is_garbage)
        deleted = await self.memory_store.delete([record.id for record in stale])
        agent_logger.log_memory_operation("garbage_collect", None, count=deleted)
        return deleted


class SleepCycleScheduler:
    """Runs the sleep cycle on a fixed interval as a background task"""

    def __init__(self, sleep_cycle: SleepCycle, interval_seconds: float):
        self.sleep_cycle = sleep_cycle
        self.interval_seconds = interval_seconds
        self.last_report: Optional[SleepCycleReport] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_forever())
            logger.info("Sleep cycle scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sleep cycle scheduler stopped")

    async def _run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.last_report = await self.sleep_cycle.run()
            except Exception as e:
                logger.error("Sleep cycle error", error=str(e))
