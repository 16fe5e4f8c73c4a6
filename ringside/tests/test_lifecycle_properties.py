"""
Randomized operation sequences.

After every call, successful or rejected, each entity has at most one open
period per kind, periods of a kind never overlap, an open injury or
suspension rides on an open tenure, and the stored history resolves to
the status the engine reported. Timestamps wander backwards as well as
forwards.
"""
import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from ringside.exceptions import LifecycleError
from ringside.orm.period import StatusPeriod
from ringside.orm.roster import EntityType, ENTITY_PERIOD_KINDS, PeriodKind, tenure_kind_for
from ringside.services.lifecycle_service import LifecycleService
from ringside.services.period_store import PeriodStore
from ringside.services.roster_service import as_ref
from ringside.services.status_resolver import resolve_status

START = datetime(2024, 1, 1)

EMPLOYMENT_VERBS = ["employ", "release", "injure", "heal", "suspend", "reinstate", "retire", "unretire"]
ACTIVATION_VERBS = ["activate", "deactivate", "suspend", "reinstate", "retire", "unretire"]


async def assert_period_invariants(db, entity_type: EntityType, entity_id: int):
    store = PeriodStore(db)
    grouped = await store.periods_by_kind(entity_type, entity_id)
    for kind in ENTITY_PERIOD_KINDS[entity_type]:
        periods = grouped[kind]
        open_periods = [p for p in periods if p.ended_at is None]
        assert len(open_periods) <= 1, f"{kind.value}: {periods}"

        for period in periods:
            assert period.ended_at is None or period.ended_at >= period.started_at

        closed = sorted((p for p in periods if p.ended_at is not None), key=lambda p: p.started_at)
        for earlier, later in zip(closed, closed[1:]):
            assert later.started_at >= earlier.ended_at
        if open_periods and closed:
            assert open_periods[0].started_at >= closed[-1].ended_at

    open_tenure = [p for p in grouped[tenure_kind_for(entity_type)] if p.ended_at is None]
    for kind in (PeriodKind.INJURY, PeriodKind.SUSPENSION):
        for condition in grouped.get(kind, ()):
            if condition.ended_at is None:
                assert open_tenure, f"open {kind.value} without tenure: {grouped}"
                assert open_tenure[0].started_at <= condition.started_at
    return grouped


class TestRandomSequences:
    """Seeded random walks through the verb space."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_wrestler_random_walk(self, db, make_entity, seed):
        rng = random.Random(seed)
        w = await make_entity(EntityType.WRESTLER, f"W{seed}")
        ref = as_ref(w)
        at = START

        for _ in range(60):
            at += timedelta(days=rng.randint(-25, 20))
            verb = rng.choice(EMPLOYMENT_VERBS)
            try:
                result = await LifecycleService.apply(db, w, verb, at)
            except LifecycleError:
                result = None

            grouped = await assert_period_invariants(db, ref.entity_type, ref.entity_id)
            if result is not None:
                assert resolve_status(ref.entity_type, grouped, at).status == result.status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entity_type", [EntityType.TAG_TEAM, EntityType.STABLE, EntityType.TITLE])
    async def test_other_entity_types_random_walk(self, db, make_entity, entity_type):
        rng = random.Random(entity_type.value)
        entity = await make_entity(entity_type, entity_type.value)
        ref = as_ref(entity)
        verbs = EMPLOYMENT_VERBS if entity_type == EntityType.TAG_TEAM else ACTIVATION_VERBS
        at = START

        for _ in range(40):
            at += timedelta(days=rng.randint(-12, 10))
            try:
                await LifecycleService.apply(db, entity, rng.choice(verbs), at)
            except LifecycleError:
                pass
            await assert_period_invariants(db, ref.entity_type, ref.entity_id)

    @pytest.mark.asyncio
    async def test_no_open_duplicates_in_table(self, db, make_entity):
        rng = random.Random(99)
        entities = [await make_entity(EntityType.WRESTLER, f"W{i}") for i in range(4)]
        at = START

        for _ in range(80):
            at += timedelta(days=rng.randint(-6, 5))
            try:
                await LifecycleService.apply(db, rng.choice(entities), rng.choice(EMPLOYMENT_VERBS), at)
            except LifecycleError:
                pass

        duplicates = await db.execute(
            select(StatusPeriod.entity_id, StatusPeriod.kind, func.count(StatusPeriod.id))
            .where(StatusPeriod.ended_at.is_(None))
            .group_by(StatusPeriod.entity_type, StatusPeriod.entity_id, StatusPeriod.kind)
            .having(func.count(StatusPeriod.id) > 1)
        )
        assert duplicates.all() == []
