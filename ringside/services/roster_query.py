"""
Query/Filter Façade.

Chainable set-membership predicates over one roster table. Every status
predicate compiles to correlated EXISTS tests against status_periods and
selects exactly the rows resolve_status() would report with that status
as of the same instant. Predicates AND together.

    ids = await RosterQuery(EntityType.WRESTLER).bookable().ids(db)
    vacant = await RosterQuery(EntityType.TITLE).active().vacant().all(db)
"""
from typing import List, Optional

from sqlalchemy import and_, exists, false, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.core.clock import Timestamp, resolve_timestamp
from ringside.exceptions import UnsupportedKindError
from ringside.orm.championship import TitleChampionship
from ringside.orm.period import StatusPeriod
from ringside.orm.roster import EntityType, PeriodKind, model_for, supports_kind, tenure_kind_for
from ringside.services.status_resolver import CompositeStatus


class RosterQuery:
    """
    Filter builder for one entity type, evaluated as of one instant.

    Soft-deleted rows are excluded unless with_trashed() or only_trashed()
    is applied.
    """

    def __init__(self, entity_type: EntityType, as_of: Optional[Timestamp] = None):
        self.entity_type = EntityType(entity_type)
        self.model = model_for(self.entity_type)
        self.as_of = resolve_timestamp(as_of)
        self.tenure_kind = tenure_kind_for(self.entity_type)
        self._conditions = []
        self._trashed = "without"

    # ------------------------------------------------------------------
    # Clause building
    # ------------------------------------------------------------------

    def _period_exists(self, kind: PeriodKind, *conditions):
        return exists().where(
            StatusPeriod.entity_type == self.entity_type.value,
            StatusPeriod.entity_id == self.model.id,
            StatusPeriod.kind == kind.value,
            *conditions
        )

    def _in_effect(self, kind: PeriodKind):
        if not supports_kind(self.entity_type, kind):
            return false()
        return self._period_exists(
            kind,
            StatusPeriod.started_at <= self.as_of,
            or_(StatusPeriod.ended_at.is_(None), StatusPeriod.ended_at > self.as_of),
        )

    def _retired(self):
        return self._in_effect(PeriodKind.RETIREMENT)

    def _tenured(self):
        return self._in_effect(self.tenure_kind)

    def _suspended(self):
        return self._in_effect(PeriodKind.SUSPENSION)

    def _injured(self):
        return self._in_effect(PeriodKind.INJURY)

    def _pending(self):
        return self._period_exists(
            self.tenure_kind,
            StatusPeriod.ended_at.is_(None),
            StatusPeriod.started_at > self.as_of,
        )

    def _has_history(self):
        return self._period_exists(self.tenure_kind, StatusPeriod.started_at <= self.as_of)

    def _reign_exists(self, *conditions):
        return exists().where(TitleChampionship.title_id == self.model.id, *conditions)

    def _require_title(self, predicate: str) -> None:
        if self.entity_type != EntityType.TITLE:
            raise UnsupportedKindError(
                f"{predicate}() applies to titles, not {self.entity_type.value}",
                reason="championship"
            )

    def where(self, clause) -> "RosterQuery":
        self._conditions.append(clause)
        return self

    # ------------------------------------------------------------------
    # Status predicates
    # ------------------------------------------------------------------

    def retired(self) -> "RosterQuery":
        return self.where(self._retired())

    def suspended(self) -> "RosterQuery":
        return self.where(and_(not_(self._retired()), self._tenured(), self._suspended()))

    def injured(self) -> "RosterQuery":
        if not supports_kind(self.entity_type, PeriodKind.INJURY):
            raise UnsupportedKindError(
                f"{self.entity_type.value} does not support injury",
                reason=PeriodKind.INJURY.value
            )
        return self.where(and_(
            not_(self._retired()), self._tenured(), not_(self._suspended()), self._injured()
        ))

    def bookable(self) -> "RosterQuery":
        return self.where(and_(
            not_(self._retired()), self._tenured(),
            not_(self._suspended()), not_(self._injured())
        ))

    def unbookable(self) -> "RosterQuery":
        return self.where(not_(and_(
            not_(self._retired()), self._tenured(),
            not_(self._suspended()), not_(self._injured())
        )))

    def future_employed(self) -> "RosterQuery":
        return self.where(and_(not_(self._retired()), not_(self._tenured()), self._pending()))

    def released(self) -> "RosterQuery":
        return self.where(and_(
            not_(self._retired()), not_(self._tenured()),
            not_(self._pending()), self._has_history()
        ))

    def unemployed(self) -> "RosterQuery":
        return self.where(and_(
            not_(self._retired()), not_(self._tenured()),
            not_(self._pending()), not_(self._has_history())
        ))

    # Activation wording for stables and titles
    active = bookable
    inactive = released
    unactivated = unemployed
    future_activated = future_employed

    def with_status(self, status: CompositeStatus) -> "RosterQuery":
        """Apply the predicate matching one composite status."""
        predicates = {
            CompositeStatus.ACTIVE: self.bookable,
            CompositeStatus.INJURED: self.injured,
            CompositeStatus.SUSPENDED: self.suspended,
            CompositeStatus.RETIRED: self.retired,
            CompositeStatus.RELEASED: self.released,
            CompositeStatus.FUTURE_EMPLOYMENT: self.future_employed,
            CompositeStatus.UNEMPLOYED: self.unemployed,
        }
        return predicates[CompositeStatus(status)]()

    # ------------------------------------------------------------------
    # Title predicates
    # ------------------------------------------------------------------

    def vacant(self) -> "RosterQuery":
        """Titles with no reign in effect. Combine with active() for competing titles."""
        self._require_title("vacant")
        return self.where(not_(self._reign_exists(
            TitleChampionship.won_at <= self.as_of,
            or_(TitleChampionship.lost_at.is_(None), TitleChampionship.lost_at > self.as_of),
        )))

    def defended(self) -> "RosterQuery":
        """Titles with at least one completed reign."""
        self._require_title("defended")
        return self.where(self._reign_exists(TitleChampionship.lost_at.isnot(None)))

    def new_titles(self) -> "RosterQuery":
        """Titles that have never had a champion."""
        self._require_title("new_titles")
        return self.where(not_(self._reign_exists()))

    # ------------------------------------------------------------------
    # Soft delete
    # ------------------------------------------------------------------

    def with_trashed(self) -> "RosterQuery":
        self._trashed = "with"
        return self

    def only_trashed(self) -> "RosterQuery":
        self._trashed = "only"
        return self

    def _trash_clause(self):
        if self._trashed == "with":
            return None
        if self._trashed == "only":
            return self.model.deleted_at.isnot(None)
        return self.model.deleted_at.is_(None)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _filters(self) -> list:
        filters = list(self._conditions)
        trash = self._trash_clause()
        if trash is not None:
            filters.append(trash)
        return filters

    def statement(self):
        return select(self.model).where(*self._filters()).order_by(self.model.id)

    async def all(self, db: AsyncSession) -> list:
        result = await db.execute(self.statement())
        return list(result.scalars().all())

    async def ids(self, db: AsyncSession) -> List[int]:
        result = await db.execute(
            select(self.model.id).where(*self._filters()).order_by(self.model.id)
        )
        return list(result.scalars().all())

    async def count(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(self.model.id)).where(*self._filters())
        )
        return result.scalar() or 0
