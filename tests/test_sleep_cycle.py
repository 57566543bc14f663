import asyncio
from datetime import timedelta

import pytest

from searchmind.domain.consolidation.sleep_cycle import PROMOTION_TAG, SleepCycle
from searchmind.domain.context.memory.action_log import ActionLog
from searchmind.domain.context.memory.memory_store import InMemoryMemoryStore
from searchmind.domain.context.memory.skill_library import SkillLibrary
from searchmind.domain.models.memory_records import ActionRecord, MemoryRecord, utcnow


def memory(content, embedding, access_count=0, weight=0.5, age_days=0, property_id="prop-1"):
    return MemoryRecord(
        property_id=property_id,
        content=content,
        embedding=embedding,
        access_count=access_count,
        importance_weight=weight,
        created_at=utcnow() - timedelta(days=age_days),
    )


def make_cycle(settings, store=None):
    return SleepCycle(store or InMemoryMemoryStore(), ActionLog(), SkillLibrary(), settings)


class TestConsolidation:
    def test_merges_duplicates_into_most_accessed(self, settings):
        async def run():
            cycle = make_cycle(settings)
            store = cycle.memory_store
            await store.insert(memory("a", [1.0, 0.0, 0.0], access_count=0, weight=0.2))
            winner = memory("b", [1.0, 0.01, 0.0], access_count=3, weight=0.5)
            await store.insert(winner)
            await store.insert(memory("c", [1.0, 0.02, 0.0], access_count=1, weight=0.8))
            await store.insert(memory("unrelated", [0.0, 1.0, 0.0]))

            first = await cycle.run()
            second = await cycle.run()
            survivor = await store.get(winner.id)
            return first, second, survivor, await store.count()

        first, second, survivor, remaining = asyncio.run(run())
        assert first.merged == 2
        assert second.merged == 0
        assert remaining == 2
        assert survivor.importance_weight == pytest.approx(0.5)
        assert len(survivor.metadata["merged_ids"]) == 2

    def test_ties_go_to_most_recent(self, settings):
        async def run():
            cycle = make_cycle(settings)
            older = memory("older", [1.0, 0.0, 0.0], age_days=2)
            newer = memory("newer", [1.0, 0.0, 0.0], age_days=1)
            await cycle.memory_store.insert(older)
            await cycle.memory_store.insert(newer)
            await cycle.consolidate()
            return older.id, await cycle.memory_store.get(newer.id), await cycle.memory_store.get(older.id)

        older_id, survivor, removed = asyncio.run(run())
        assert removed is None
        assert survivor.metadata["merged_ids"] == [older_id]

    def test_never_merges_across_properties(self, settings):
        async def run():
            cycle = make_cycle(settings)
            await cycle.memory_store.insert(memory("a", [1.0, 0.0, 0.0], property_id="prop-1"))
            await cycle.memory_store.insert(memory("b", [1.0, 0.0, 0.0], property_id="prop-2"))
            return await cycle.consolidate(), await cycle.memory_store.count()

        assert asyncio.run(run()) == (0, 2)


class TestPromotion:
    @staticmethod
    async def log_actions(action_log, scores, action_type="meta_rewrite", start=0):
        now = utcnow()
        for i, score in enumerate(scores, start=start):
            action = ActionRecord(
                property_id="prop-1",
                agent_type="OPTIMIZER",
                action_type=action_type,
                context_summary=f"context {i}",
                action_details={"steps": [f"step {i}"]},
                executed_at=now + timedelta(minutes=i),
            )
            await action_log.record(action)
            await action_log.record_impact(action.id, score)

    def test_two_successes_are_not_enough(self, settings):
        async def run():
            cycle = make_cycle(settings)
            await self.log_actions(cycle.action_log, [0.9, 0.8])
            return await cycle.promote(), await cycle.skill_library.get_by_strategy("meta_rewrite")

        (promoted, updated), skill = asyncio.run(run())
        assert (promoted, updated) == (0, 0)
        assert skill is None

    def test_third_success_promotes_from_latest_action(self, settings):
        async def run():
            cycle = make_cycle(settings)
            await self.log_actions(cycle.action_log, [0.9, 0.8, 0.75, 0.7])
            return await cycle.promote(), await cycle.skill_library.get_by_strategy("meta_rewrite")

        (promoted, updated), skill = asyncio.run(run())
        assert (promoted, updated) == (1, 0)
        assert skill.times_applied == 3
        assert skill.success_rate == 0.75
        assert skill.context_pattern == "context 2"
        assert skill.action_steps == ["step 2"]
        assert skill.tags == [PROMOTION_TAG]
        assert skill.description == "Automatically promoted strategy based on 3 successful executions."

    def test_later_successes_update_without_double_counting(self, settings):
        async def run():
            cycle = make_cycle(settings)
            await self.log_actions(cycle.action_log, [0.9, 0.8, 0.8])
            await cycle.promote()
            await self.log_actions(cycle.action_log, [0.9], start=3)
            first_update = await cycle.promote()
            second_update = await cycle.promote()
            return first_update, second_update, await cycle.skill_library.get_by_strategy("meta_rewrite")

        first_update, second_update, skill = asyncio.run(run())
        assert first_update == (0, 1)
        assert second_update == (0, 0)
        assert skill.times_applied == 4
        assert skill.success_rate == pytest.approx(0.85)
        assert len(skill.source_action_ids) == 4


class TestGarbageCollection:
    def test_deletes_only_old_weak_unused_memories(self, settings):
        async def run():
            cycle = make_cycle(settings)
            store = cycle.memory_store
            stale = memory("stale", [1.0, 0.0, 0.0], weight=0.2, age_days=40)
            await store.insert(stale)
            await store.insert(memory("recent", [0.0, 1.0, 0.0], weight=0.2, age_days=5))
            await store.insert(memory("used", [0.0, 0.0, 1.0], weight=0.2, age_days=40, access_count=2))
            await store.insert(memory("important", [0.5, 0.5, 0.0], weight=0.3, age_days=40))
            brand = memory("brand", [0.0, 0.5, 0.5], weight=1.0, age_days=400)
            await store.insert(brand)
            deleted = await cycle.collect_garbage()
            return deleted, await store.get(stale.id), await store.get(brand.id), await store.count()

        deleted, stale, brand, remaining = asyncio.run(run())
        assert brand is not None
        assert brand.brand_protected
        assert deleted == 1
        assert stale is None
        assert remaining == 4


class FailingStore(InMemoryMemoryStore):
    async def recent(self, memory_type, limit):
        raise RuntimeError("store offline")


def test_failed_subtask_does_not_stop_the_others(settings):
    async def run():
        cycle = make_cycle(settings, store=FailingStore())
        await cycle.memory_store.insert(memory("stale", [1.0, 0.0, 0.0], weight=0.1, age_days=60))
        return await cycle.run()

    report = asyncio.run(run())
    assert report.errors == {"consolidation": "store offline"}
    assert report.deleted == 1
