"""
Period Store Tests.

Structural invariants only: one open period per kind, no overlap,
ended_at >= started_at, kind support per entity type.
"""
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from ringside.exceptions import (
    InvalidRangeError, NoOpenPeriodError, OverlappingPeriodError, UnsupportedKindError
)
from ringside.orm.period import StatusPeriod
from ringside.orm.roster import EntityType, PeriodKind
from ringside.services.period_store import PeriodStore

W = EntityType.WRESTLER
JAN = datetime(2024, 1, 1)
FEB = datetime(2024, 2, 1)
MAR = datetime(2024, 3, 1)
APR = datetime(2024, 4, 1)


class TestAddPeriod:
    """Opening periods."""

    @pytest.mark.asyncio
    async def test_add_returns_id_and_opens(self, db):
        store = PeriodStore(db)
        period_id = await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)

        period = await store.open_period(W, 1, PeriodKind.EMPLOYMENT)
        assert period.id == period_id
        assert period.is_open
        assert period.started_at == JAN

    @pytest.mark.asyncio
    async def test_second_open_period_rejected(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.INJURY, JAN)

        with pytest.raises(OverlappingPeriodError):
            await store.add_period(W, 1, PeriodKind.INJURY, FEB)

    @pytest.mark.asyncio
    async def test_kinds_and_entities_are_independent(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)
        await store.add_period(W, 1, PeriodKind.INJURY, JAN)
        await store.add_period(W, 2, PeriodKind.EMPLOYMENT, JAN)
        await store.add_period(EntityType.MANAGER, 1, PeriodKind.EMPLOYMENT, JAN)

        assert await store.open_period(W, 2, PeriodKind.EMPLOYMENT) is not None

    @pytest.mark.asyncio
    async def test_start_before_previous_end_rejected(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)
        await store.close_period(W, 1, PeriodKind.EMPLOYMENT, MAR)

        with pytest.raises(OverlappingPeriodError):
            await store.add_period(W, 1, PeriodKind.EMPLOYMENT, FEB)

    @pytest.mark.asyncio
    async def test_start_at_previous_end_allowed(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)
        await store.close_period(W, 1, PeriodKind.EMPLOYMENT, MAR)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, MAR)

        periods = await store.periods_for(W, 1, PeriodKind.EMPLOYMENT)
        assert [(p.started_at, p.ended_at) for p in periods] == [(JAN, MAR), (MAR, None)]

    @pytest.mark.asyncio
    async def test_unsupported_kind(self, db):
        store = PeriodStore(db)
        with pytest.raises(UnsupportedKindError):
            await store.add_period(EntityType.STABLE, 1, PeriodKind.INJURY, JAN)
        with pytest.raises(UnsupportedKindError):
            await store.add_period(EntityType.TITLE, 1, PeriodKind.EMPLOYMENT, JAN)


class TestClosePeriod:
    """Closing periods."""

    @pytest.mark.asyncio
    async def test_close_sets_end(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.SUSPENSION, JAN)
        period = await store.close_period(W, 1, PeriodKind.SUSPENSION, FEB)

        assert period.ended_at == FEB
        assert await store.open_period(W, 1, PeriodKind.SUSPENSION) is None

    @pytest.mark.asyncio
    async def test_close_without_open_period(self, db):
        store = PeriodStore(db)
        with pytest.raises(NoOpenPeriodError):
            await store.close_period(W, 1, PeriodKind.INJURY, FEB)

    @pytest.mark.asyncio
    async def test_close_before_start(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.INJURY, FEB)
        with pytest.raises(InvalidRangeError):
            await store.close_period(W, 1, PeriodKind.INJURY, JAN)

    @pytest.mark.asyncio
    async def test_zero_length_period_allowed(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.INJURY, FEB)
        period = await store.close_period(W, 1, PeriodKind.INJURY, FEB)
        assert period.started_at == period.ended_at

    @pytest.mark.asyncio
    async def test_close_if_open_is_noop_without_period(self, db):
        store = PeriodStore(db)
        assert await store.close_if_open(W, 1, PeriodKind.INJURY, FEB) is None
        assert await store.close_if_open(EntityType.TAG_TEAM, 1, PeriodKind.INJURY, FEB) is None


class TestHistory:
    """Ordered reads and history helpers."""

    @pytest.mark.asyncio
    async def test_periods_ordered_by_start(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)
        await store.close_period(W, 1, PeriodKind.EMPLOYMENT, FEB)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, MAR)

        periods = await store.periods_for(W, 1, PeriodKind.EMPLOYMENT)
        assert [p.started_at for p in periods] == [JAN, MAR]

    @pytest.mark.asyncio
    async def test_periods_by_kind_has_every_applicable_kind(self, db):
        store = PeriodStore(db)
        await store.add_period(EntityType.TAG_TEAM, 3, PeriodKind.EMPLOYMENT, JAN)

        grouped = await store.periods_by_kind(EntityType.TAG_TEAM, 3)
        assert set(grouped) == {PeriodKind.EMPLOYMENT, PeriodKind.SUSPENSION, PeriodKind.RETIREMENT}
        assert len(grouped[PeriodKind.EMPLOYMENT]) == 1
        assert grouped[PeriodKind.SUSPENSION] == []

    @pytest.mark.asyncio
    async def test_reschedule_open_period(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, APR)
        period = await store.reschedule_open_period(W, 1, PeriodKind.EMPLOYMENT, FEB)
        assert period.started_at == FEB

    @pytest.mark.asyncio
    async def test_reschedule_cannot_overlap_previous(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)
        await store.close_period(W, 1, PeriodKind.EMPLOYMENT, MAR)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, APR)

        with pytest.raises(OverlappingPeriodError):
            await store.reschedule_open_period(W, 1, PeriodKind.EMPLOYMENT, FEB)


class TestDatabaseConstraint:
    """The partial unique index backs the one-open-period rule."""

    @pytest.mark.asyncio
    async def test_second_open_row_violates_unique_index(self, db):
        store = PeriodStore(db)
        await store.add_period(W, 1, PeriodKind.EMPLOYMENT, JAN)

        # Bypass the store's check, as a racing writer would
        db.add(StatusPeriod(
            entity_type=W.value, entity_id=1, kind=PeriodKind.EMPLOYMENT.value,
            started_at=FEB, ended_at=None
        ))
        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()
