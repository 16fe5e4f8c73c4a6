"""
Period Store.

Persistence for per-entity, per-kind time periods. Knows the structural
invariants (one open period per kind, no overlap, ended_at >= started_at)
but nothing about employment or booking rules.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.exceptions import (
    OverlappingPeriodError, NoOpenPeriodError, InvalidRangeError, UnsupportedKindError
)
from ringside.orm.period import StatusPeriod
from ringside.orm.roster import EntityType, PeriodKind, ENTITY_PERIOD_KINDS, supports_kind

logger = logging.getLogger(__name__)


class PeriodStore:
    """
    Period rows for one session.

    All writes are flushed but never committed here; the caller owns the
    transaction so that several store calls can succeed or fail together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _check_kind(entity_type: EntityType, kind: PeriodKind) -> None:
        if not supports_kind(entity_type, kind):
            raise UnsupportedKindError(
                f"{entity_type.value} does not support {kind.value} periods",
                reason=kind.value
            )

    def _base_query(self, entity_type: EntityType, entity_id: int, kind: PeriodKind):
        return select(StatusPeriod).where(
            StatusPeriod.entity_type == entity_type.value,
            StatusPeriod.entity_id == entity_id,
            StatusPeriod.kind == kind.value,
        )

    async def periods_for(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind
    ) -> List[StatusPeriod]:
        """All periods of one kind, oldest first."""
        self._check_kind(entity_type, kind)
        result = await self.db.execute(
            self._base_query(entity_type, entity_id, kind)
            .order_by(StatusPeriod.started_at, StatusPeriod.id)
        )
        return list(result.scalars().all())

    async def periods_by_kind(
        self,
        entity_type: EntityType,
        entity_id: int
    ) -> Dict[PeriodKind, List[StatusPeriod]]:
        """Every applicable kind mapped to its ordered periods, in one query."""
        result = await self.db.execute(
            select(StatusPeriod)
            .where(
                StatusPeriod.entity_type == entity_type.value,
                StatusPeriod.entity_id == entity_id,
            )
            .order_by(StatusPeriod.started_at, StatusPeriod.id)
        )
        grouped: Dict[PeriodKind, List[StatusPeriod]] = {
            kind: [] for kind in ENTITY_PERIOD_KINDS[entity_type]
        }
        for period in result.scalars().all():
            grouped.setdefault(PeriodKind(period.kind), []).append(period)
        return grouped

    async def open_period(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind
    ) -> Optional[StatusPeriod]:
        self._check_kind(entity_type, kind)
        result = await self.db.execute(
            self._base_query(entity_type, entity_id, kind)
            .where(StatusPeriod.ended_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def _latest_end(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind
    ) -> Optional[datetime]:
        result = await self.db.execute(
            select(func.max(StatusPeriod.ended_at)).where(
                StatusPeriod.entity_type == entity_type.value,
                StatusPeriod.entity_id == entity_id,
                StatusPeriod.kind == kind.value,
            )
        )
        return result.scalar()

    async def add_period(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind,
        started_at: datetime
    ) -> int:
        """
        Open a new period.

        Raises:
            UnsupportedKindError: kind does not apply to the entity type
            OverlappingPeriodError: an open period exists, or started_at falls
                before the end of an earlier period of the same kind
        """
        self._check_kind(entity_type, kind)

        existing = await self.open_period(entity_type, entity_id, kind)
        if existing is not None:
            raise OverlappingPeriodError(
                f"{entity_type.value} {entity_id} already has an open {kind.value} period "
                f"started {existing.started_at.isoformat()}"
            )

        latest_end = await self._latest_end(entity_type, entity_id, kind)
        if latest_end is not None and started_at < latest_end:
            raise OverlappingPeriodError(
                f"{kind.value} period for {entity_type.value} {entity_id} cannot start "
                f"{started_at.isoformat()}, before the previous one ended {latest_end.isoformat()}"
            )

        period = StatusPeriod(
            entity_type=entity_type.value,
            entity_id=entity_id,
            kind=kind.value,
            started_at=started_at,
            ended_at=None,
        )
        self.db.add(period)

        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent writer opened the same kind first
            raise OverlappingPeriodError(
                f"{entity_type.value} {entity_id} already has an open {kind.value} period"
            )

        logger.debug(f"Opened {kind.value} period {period.id} for {entity_type.value} {entity_id}")
        return period.id

    async def close_period(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind,
        ended_at: datetime
    ) -> StatusPeriod:
        """
        Close the open period of a kind.

        Raises:
            NoOpenPeriodError: nothing to close
            InvalidRangeError: ended_at precedes the period's started_at
        """
        period = await self.open_period(entity_type, entity_id, kind)
        if period is None:
            raise NoOpenPeriodError(
                f"{entity_type.value} {entity_id} has no open {kind.value} period"
            )
        if ended_at < period.started_at:
            raise InvalidRangeError(
                f"{kind.value} period for {entity_type.value} {entity_id} cannot end "
                f"{ended_at.isoformat()}, before it started {period.started_at.isoformat()}"
            )

        period.ended_at = ended_at
        await self.db.flush()

        logger.debug(f"Closed {kind.value} period {period.id} for {entity_type.value} {entity_id}")
        return period

    async def close_if_open(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind,
        ended_at: datetime
    ) -> Optional[StatusPeriod]:
        """Close the open period of a kind when there is one; no-op otherwise."""
        if not supports_kind(entity_type, kind):
            return None
        if await self.open_period(entity_type, entity_id, kind) is None:
            return None
        return await self.close_period(entity_type, entity_id, kind, ended_at)

    async def reschedule_open_period(
        self,
        entity_type: EntityType,
        entity_id: int,
        kind: PeriodKind,
        started_at: datetime
    ) -> StatusPeriod:
        """
        Move the start of the open period.

        Used for pending periods that have not started yet. The new start
        must not fall before the end of an earlier period.
        """
        period = await self.open_period(entity_type, entity_id, kind)
        if period is None:
            raise NoOpenPeriodError(
                f"{entity_type.value} {entity_id} has no open {kind.value} period"
            )

        latest_end = await self._latest_end(entity_type, entity_id, kind)
        if latest_end is not None and started_at < latest_end:
            raise OverlappingPeriodError(
                f"{kind.value} period for {entity_type.value} {entity_id} cannot start "
                f"{started_at.isoformat()}, before the previous one ended {latest_end.isoformat()}"
            )

        period.started_at = started_at
        await self.db.flush()
        return period
