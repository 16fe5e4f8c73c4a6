"""
Lifecycle Transition Engine.

One verb per state change: employ, release, injure, heal, suspend,
reinstate, retire, unretire, activate, deactivate. Each verb

1. locks the entity row (single writer per entity),
2. resolves the entity's status as of the transition timestamp,
3. refuses to act underneath history recorded after that timestamp,
4. validates the verb's precondition against that status,
5. writes period rows and the event row,
6. commits, or rolls back everything on any failure,

and publishes the event only after the commit succeeded.

employ and activate can cascade: the group's current members (and, for
them, their own members and managers) that are not yet employed are
employed at the same instant, inside the same transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ringside.core.clock import Timestamp, resolve_timestamp
from ringside.exceptions import (
    InvalidTransitionError, LifecycleError, UnsupportedKindError
)
from ringside.orm.base import RosterEntity
from ringside.orm.lifecycle_event import EventType
from ringside.orm.period import StatusPeriod
from ringside.orm.roster import EntityType, PeriodKind, supports_kind, tenure_kind_for
from ringside.services.championship_service import ChampionshipLedger
from ringside.services.event_log import EventLog
from ringside.services.membership_service import MembershipService
from ringside.services.period_store import PeriodStore
from ringside.services.roster_service import EntityLike, EntityRef, RosterService, as_ref
from ringside.services.status_resolver import CompositeStatus, StatusSnapshot, resolve_status

logger = logging.getLogger(__name__)


# Statuses from which a new tenure may start
HIREABLE_STATUSES = (
    CompositeStatus.UNEMPLOYED,
    CompositeStatus.RELEASED,
    CompositeStatus.FUTURE_EMPLOYMENT,
)

# Statuses that count as currently holding a tenure
TENURED_STATUSES = (
    CompositeStatus.ACTIVE,
    CompositeStatus.INJURED,
    CompositeStatus.SUSPENDED,
)

# Open periods that block a new injury or suspension
BLOCKING_CONDITIONS = {
    PeriodKind.RETIREMENT: CompositeStatus.RETIRED,
    PeriodKind.SUSPENSION: CompositeStatus.SUSPENDED,
    PeriodKind.INJURY: CompositeStatus.INJURED,
}

# Verbs that may cascade to members, and the member order they cascade in
CASCADE_OPERATIONS = ("employ", "activate")
CASCADE_ORDER = (EntityType.WRESTLER, EntityType.TAG_TEAM, EntityType.MANAGER)

START_VERBS = {
    PeriodKind.EMPLOYMENT: "employ",
    PeriodKind.ACTIVATION: "activate",
}


@dataclass
class TransitionContext:
    """Everything a verb handler needs, resolved inside the locked transaction."""
    db: AsyncSession
    store: PeriodStore
    entity: RosterEntity
    ref: EntityRef
    snapshot: StatusSnapshot
    periods: Mapping[PeriodKind, List[StatusPeriod]]
    operation: str
    at: datetime

    @property
    def tenure_kind(self) -> PeriodKind:
        return tenure_kind_for(self.ref.entity_type)


@dataclass
class TransitionResult:
    """Outcome of a committed transition."""
    operation: str
    entity_type: EntityType
    entity_id: int
    at: datetime
    previous_status: CompositeStatus
    snapshot: StatusSnapshot
    event: Dict[str, Any]
    cascaded: List[EntityRef] = field(default_factory=list)

    @property
    def status(self) -> CompositeStatus:
        return self.snapshot.status

    @property
    def is_bookable(self) -> bool:
        return self.snapshot.is_bookable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "at": self.at.isoformat(),
            "previous_status": self.previous_status.value,
            "status": self.snapshot.status.value,
            "label": self.snapshot.label,
            "is_bookable": self.snapshot.is_bookable,
            "event": self.event,
            "cascaded": _refs_to_dicts(self.cascaded),
        }


Handler = Callable[[TransitionContext], Awaitable[Optional[Dict[str, Any]]]]


def _refs_to_dicts(refs: List[EntityRef]) -> List[Dict[str, Any]]:
    return [{"entity_type": ref.entity_type.value, "entity_id": ref.entity_id} for ref in refs]


def _require_tenure(ctx: TransitionContext, kind: PeriodKind) -> None:
    if ctx.tenure_kind != kind:
        raise UnsupportedKindError(
            f"Cannot {ctx.operation}: {ctx.ref.entity_type.value} uses {ctx.tenure_kind.value}, "
            f"not {kind.value}",
            reason=kind.value
        )


def _require_kind(ctx: TransitionContext, kind: PeriodKind) -> None:
    if not supports_kind(ctx.ref.entity_type, kind):
        raise UnsupportedKindError(
            f"Cannot {ctx.operation}: {ctx.ref.entity_type.value} does not support {kind.value}",
            reason=kind.value
        )


def _latest_instant(periods: Mapping[PeriodKind, List[StatusPeriod]]) -> Optional[datetime]:
    instants = [p.ended_at or p.started_at for rows in periods.values() for p in rows]
    return max(instants) if instants else None


def _require_settled(ctx: TransitionContext, allow_pending: bool = False) -> None:
    """
    Reject when any period starts or ends after `at`.

    The reason is the status at the end of the recorded history. With
    allow_pending, the open tenure period of a FutureEmployment entity is
    exempt; employ and activate move its start.
    """
    for kind, periods in ctx.periods.items():
        for period in periods:
            if allow_pending and kind == ctx.tenure_kind and period.ended_at is None:
                continue
            if period.started_at > ctx.at or (period.ended_at is not None and period.ended_at > ctx.at):
                latest = resolve_status(ctx.ref.entity_type, ctx.periods, _latest_instant(ctx.periods))
                raise InvalidTransitionError(
                    ctx.operation, latest.status.value,
                    f"Cannot {ctx.operation} {ctx.ref.entity_type.value} {ctx.ref.entity_id} at "
                    f"{ctx.at.isoformat()}: its {kind.value} history continues after that"
                )


def _require_status(ctx: TransitionContext, allowed) -> None:
    """Reject with the current status as the reason when it is not allowed."""
    _require_settled(
        ctx,
        allow_pending=(
            CompositeStatus.FUTURE_EMPLOYMENT in allowed
            and ctx.snapshot.status == CompositeStatus.FUTURE_EMPLOYMENT
        )
    )
    if ctx.snapshot.status not in allowed:
        raise InvalidTransitionError(ctx.operation, ctx.snapshot.status.value)


def _require_clear_tenure(ctx: TransitionContext) -> None:
    """An open tenure started by `at` and no open retirement, suspension or injury."""
    tenure = [
        p for p in ctx.periods.get(ctx.tenure_kind, ())
        if p.ended_at is None and p.started_at <= ctx.at
    ]
    if not tenure:
        raise InvalidTransitionError(ctx.operation, ctx.snapshot.status.value)
    for kind, status in BLOCKING_CONDITIONS.items():
        if any(p.ended_at is None for p in ctx.periods.get(kind, ())):
            raise InvalidTransitionError(ctx.operation, status.value)


async def _require_open(ctx: TransitionContext, kind: PeriodKind, reason: str) -> StatusPeriod:
    _require_settled(ctx)
    period = await ctx.store.open_period(ctx.ref.entity_type, ctx.ref.entity_id, kind)
    if period is None:
        raise InvalidTransitionError(ctx.operation, reason)
    return period


async def _start_tenure(ctx: TransitionContext) -> Dict[str, Any]:
    """Open the tenure period, or pull a pending one forward to `at`."""
    _require_status(ctx, HIREABLE_STATUSES)
    kind = ctx.tenure_kind
    if ctx.snapshot.status == CompositeStatus.FUTURE_EMPLOYMENT:
        period = await ctx.store.reschedule_open_period(
            ctx.ref.entity_type, ctx.ref.entity_id, kind, ctx.at
        )
        return {"period_id": period.id, "kind": kind.value, "rescheduled": True}

    period_id = await ctx.store.add_period(ctx.ref.entity_type, ctx.ref.entity_id, kind, ctx.at)
    return {"period_id": period_id, "kind": kind.value, "rescheduled": False}


async def _close_conditions(ctx: TransitionContext) -> List[str]:
    """Close any open injury and suspension at `at`."""
    closed = []
    for kind in (PeriodKind.INJURY, PeriodKind.SUSPENSION):
        period = await ctx.store.close_if_open(ctx.ref.entity_type, ctx.ref.entity_id, kind, ctx.at)
        if period is not None:
            closed.append(kind.value)
    return closed


async def _end_tenure(ctx: TransitionContext) -> Dict[str, Any]:
    """Close the tenure period and every condition riding on it."""
    _require_status(ctx, TENURED_STATUSES)
    closed = await _close_conditions(ctx)
    await ctx.store.close_period(ctx.ref.entity_type, ctx.ref.entity_id, ctx.tenure_kind, ctx.at)
    closed.insert(0, ctx.tenure_kind.value)

    payload: Dict[str, Any] = {"closed": closed}
    if ctx.ref.entity_type == EntityType.TITLE:
        reign = await ChampionshipLedger.close_open_reign(ctx.db, ctx.ref.entity_id, ctx.at)
        payload["vacated_championship_id"] = reign.id if reign else None
    return payload


async def _employ(ctx: TransitionContext) -> Dict[str, Any]:
    _require_tenure(ctx, PeriodKind.EMPLOYMENT)
    return await _start_tenure(ctx)


async def _release(ctx: TransitionContext) -> Dict[str, Any]:
    _require_tenure(ctx, PeriodKind.EMPLOYMENT)
    return await _end_tenure(ctx)


async def _activate(ctx: TransitionContext) -> Dict[str, Any]:
    _require_tenure(ctx, PeriodKind.ACTIVATION)
    return await _start_tenure(ctx)


async def _deactivate(ctx: TransitionContext) -> Dict[str, Any]:
    _require_tenure(ctx, PeriodKind.ACTIVATION)
    return await _end_tenure(ctx)


async def _injure(ctx: TransitionContext) -> Dict[str, Any]:
    _require_kind(ctx, PeriodKind.INJURY)
    _require_status(ctx, (CompositeStatus.ACTIVE,))
    _require_clear_tenure(ctx)
    period_id = await ctx.store.add_period(
        ctx.ref.entity_type, ctx.ref.entity_id, PeriodKind.INJURY, ctx.at
    )
    return {"period_id": period_id}


async def _heal(ctx: TransitionContext) -> Dict[str, Any]:
    _require_kind(ctx, PeriodKind.INJURY)
    await _require_open(ctx, PeriodKind.INJURY, "not_injured")
    period = await ctx.store.close_period(
        ctx.ref.entity_type, ctx.ref.entity_id, PeriodKind.INJURY, ctx.at
    )
    return {"period_id": period.id}


async def _suspend(ctx: TransitionContext) -> Dict[str, Any]:
    _require_kind(ctx, PeriodKind.SUSPENSION)
    _require_status(ctx, (CompositeStatus.ACTIVE,))
    _require_clear_tenure(ctx)
    period_id = await ctx.store.add_period(
        ctx.ref.entity_type, ctx.ref.entity_id, PeriodKind.SUSPENSION, ctx.at
    )
    return {"period_id": period_id}


async def _reinstate(ctx: TransitionContext) -> Dict[str, Any]:
    _require_kind(ctx, PeriodKind.SUSPENSION)
    await _require_open(ctx, PeriodKind.SUSPENSION, "not_suspended")
    period = await ctx.store.close_period(
        ctx.ref.entity_type, ctx.ref.entity_id, PeriodKind.SUSPENSION, ctx.at
    )
    return {"period_id": period.id}


async def _retire(ctx: TransitionContext) -> Dict[str, Any]:
    payload = await _end_tenure(ctx)
    payload["period_id"] = await ctx.store.add_period(
        ctx.ref.entity_type, ctx.ref.entity_id, PeriodKind.RETIREMENT, ctx.at
    )
    return payload


async def _unretire(ctx: TransitionContext) -> Dict[str, Any]:
    await _require_open(ctx, PeriodKind.RETIREMENT, "not_retired")
    await ctx.store.close_period(
        ctx.ref.entity_type, ctx.ref.entity_id, PeriodKind.RETIREMENT, ctx.at
    )
    period_id = await ctx.store.add_period(
        ctx.ref.entity_type, ctx.ref.entity_id, ctx.tenure_kind, ctx.at
    )
    return {"period_id": period_id, "kind": ctx.tenure_kind.value}


class LifecycleService:
    """
    Roster lifecycle verbs.

    Every verb takes (db, entity, at=None) where entity is an ORM roster
    entity or an EntityRef, and `at` defaults to the clock's now. Verbs
    commit on success and raise a LifecycleError subclass on rejection,
    leaving no partial state behind.
    """

    # operation name -> (handler, event emitted on success)
    OPERATIONS: Dict[str, Tuple[Handler, EventType]] = {
        "employ": (_employ, EventType.ENTITY_EMPLOYED),
        "release": (_release, EventType.ENTITY_RELEASED),
        "injure": (_injure, EventType.ENTITY_INJURED),
        "heal": (_heal, EventType.ENTITY_HEALED),
        "suspend": (_suspend, EventType.ENTITY_SUSPENDED),
        "reinstate": (_reinstate, EventType.ENTITY_REINSTATED),
        "retire": (_retire, EventType.ENTITY_RETIRED),
        "unretire": (_unretire, EventType.ENTITY_UNRETIRED),
        "activate": (_activate, EventType.ENTITY_ACTIVATED),
        "deactivate": (_deactivate, EventType.ENTITY_DEACTIVATED),
    }

    @staticmethod
    async def _transition(
        db: AsyncSession,
        ref: EntityRef,
        operation: str,
        at: datetime,
        messages: List[Dict[str, Any]],
        cascade: bool = False,
        visited: Optional[Set[EntityRef]] = None,
        cascaded_from: Optional[EntityRef] = None
    ) -> Tuple[StatusSnapshot, StatusSnapshot, List[EntityRef]]:
        """Apply one verb inside the caller's transaction; no commit."""
        handler, event_type = LifecycleService.OPERATIONS[operation]

        # Lock entity row
        locked = await RosterService.require_entity(db, ref.entity_type, ref.entity_id, lock=True)
        if locked.is_deleted:
            raise InvalidTransitionError(operation, "deleted")

        store = PeriodStore(db)
        periods = await store.periods_by_kind(ref.entity_type, ref.entity_id)
        before = resolve_status(ref.entity_type, periods, at)
        ctx = TransitionContext(
            db=db, store=store, entity=locked, ref=ref,
            snapshot=before, periods=periods, operation=operation, at=at
        )

        payload = await handler(ctx) or {}
        payload["previous_status"] = before.status.value

        after = resolve_status(
            ref.entity_type,
            await store.periods_by_kind(ref.entity_type, ref.entity_id),
            at
        )
        payload["status"] = after.status.value
        if cascaded_from is not None:
            payload["cascaded_from"] = _refs_to_dicts([cascaded_from])[0]

        messages.append(
            await EventLog.record(db, event_type, ref.entity_type, ref.entity_id, at, payload)
        )

        cascaded: List[EntityRef] = []
        if cascade and operation in CASCADE_OPERATIONS:
            if visited is None:
                visited = {ref}
            cascaded = await LifecycleService._cascade(db, ref, at, messages, visited)
        return before, after, cascaded

    @staticmethod
    async def _cascade(
        db: AsyncSession,
        group: EntityRef,
        at: datetime,
        messages: List[Dict[str, Any]],
        visited: Set[EntityRef]
    ) -> List[EntityRef]:
        """Start the tenure of every current member that is not yet employed."""
        members = await MembershipService.current_members(db, group, at)
        members.sort(key=lambda m: CASCADE_ORDER.index(m.entity_type))

        started: List[EntityRef] = []
        for member in members:
            if member in visited:
                continue
            visited.add(member)

            entity = await RosterService.require_entity(db, member.entity_type, member.entity_id, lock=True)
            if entity.is_deleted:
                continue
            periods = await PeriodStore(db).periods_by_kind(member.entity_type, member.entity_id)
            if resolve_status(member.entity_type, periods, at).status not in HIREABLE_STATUSES:
                continue

            verb = START_VERBS[tenure_kind_for(member.entity_type)]
            _, _, nested = await LifecycleService._transition(
                db, member, verb, at, messages,
                cascade=True, visited=visited, cascaded_from=group
            )
            started.append(member)
            started.extend(nested)
        return started

    @staticmethod
    async def _run(
        db: AsyncSession,
        entity: EntityLike,
        operation: str,
        at: Optional[Timestamp] = None,
        cascade: bool = False
    ) -> TransitionResult:
        at = resolve_timestamp(at)
        ref = as_ref(entity)
        messages: List[Dict[str, Any]] = []

        try:
            before, after, cascaded = await LifecycleService._transition(
                db, ref, operation, at, messages, cascade=cascade
            )
            await db.commit()

        except Exception as e:
            await db.rollback()
            if isinstance(e, LifecycleError):
                logger.warning(f"Rejected {operation} on {ref.entity_type.value} {ref.entity_id}: {e.message}")
            raise

        logger.info(
            f"{operation} {ref.entity_type.value} {ref.entity_id} at {at.isoformat()}: "
            f"{before.status.value} -> {after.status.value}"
            + (f" (cascaded to {len(cascaded)} members)" if cascaded else "")
        )
        for message in messages:
            await EventLog.publish(message)

        return TransitionResult(
            operation=operation,
            entity_type=ref.entity_type,
            entity_id=ref.entity_id,
            at=at,
            previous_status=before.status,
            snapshot=after,
            event=messages[0],
            cascaded=cascaded,
        )

    @staticmethod
    async def apply(
        db: AsyncSession,
        entity: EntityLike,
        operation: str,
        at: Optional[Timestamp] = None,
        cascade: bool = False
    ) -> TransitionResult:
        """Run a verb by name (used by the HTTP layer). cascade only affects employ and activate."""
        if operation not in LifecycleService.OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        return await LifecycleService._run(db, entity, operation, at, cascade)

    # ==========================================================================
    # Verbs
    # ==========================================================================

    @staticmethod
    async def employ(
        db: AsyncSession,
        entity: EntityLike,
        at: Optional[Timestamp] = None,
        cascade: bool = False
    ) -> TransitionResult:
        """
        Start employment. Allowed from Unemployed, Released and Future Employment.

        With cascade, current members and managers that are not employed
        yet are employed at the same instant, in the same transaction.
        """
        return await LifecycleService._run(db, entity, "employ", at, cascade)

    @staticmethod
    async def release(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        """End employment, closing any open injury or suspension at the same instant."""
        return await LifecycleService._run(db, entity, "release", at)

    @staticmethod
    async def injure(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        return await LifecycleService._run(db, entity, "injure", at)

    @staticmethod
    async def heal(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        return await LifecycleService._run(db, entity, "heal", at)

    @staticmethod
    async def suspend(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        return await LifecycleService._run(db, entity, "suspend", at)

    @staticmethod
    async def reinstate(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        return await LifecycleService._run(db, entity, "reinstate", at)

    @staticmethod
    async def retire(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        """
        Retire an entity that currently holds a tenure.

        Tenure, injury and suspension all close at `at`; a retired title
        also loses its open reign.
        """
        return await LifecycleService._run(db, entity, "retire", at)

    @staticmethod
    async def unretire(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        """End retirement and start a new tenure at the same instant."""
        return await LifecycleService._run(db, entity, "unretire", at)

    @staticmethod
    async def activate(
        db: AsyncSession,
        entity: EntityLike,
        at: Optional[Timestamp] = None,
        cascade: bool = False
    ) -> TransitionResult:
        return await LifecycleService._run(db, entity, "activate", at, cascade)

    @staticmethod
    async def deactivate(db: AsyncSession, entity: EntityLike, at: Optional[Timestamp] = None) -> TransitionResult:
        """Deactivate a stable or title; a deactivated title is vacated."""
        return await LifecycleService._run(db, entity, "deactivate", at)

    # ==========================================================================
    # Reads
    # ==========================================================================

    @staticmethod
    async def status(
        db: AsyncSession,
        entity: EntityLike,
        as_of: Optional[Timestamp] = None
    ) -> StatusSnapshot:
        """Resolve the entity's status as of as_of (default now)."""
        ref = as_ref(entity)
        await RosterService.require_entity(db, ref.entity_type, ref.entity_id)
        periods = await PeriodStore(db).periods_by_kind(ref.entity_type, ref.entity_id)
        return resolve_status(ref.entity_type, periods, as_of)

    @staticmethod
    async def is_bookable(
        db: AsyncSession,
        entity: EntityLike,
        as_of: Optional[Timestamp] = None
    ) -> bool:
        snapshot = await LifecycleService.status(db, entity, as_of)
        return snapshot.is_bookable

    @staticmethod
    async def periods(db: AsyncSession, entity: EntityLike) -> Dict[PeriodKind, List[StatusPeriod]]:
        """Full period history grouped by kind."""
        ref = as_ref(entity)
        await RosterService.require_entity(db, ref.entity_type, ref.entity_id)
        return await PeriodStore(db).periods_by_kind(ref.entity_type, ref.entity_id)
