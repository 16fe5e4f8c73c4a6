"""
Championship Ledger.

Title reigns: who holds each title, since when, and for how long. A reign
is open while lost_at is NULL; at most one reign per title is open and
consecutive reigns touch without a gap or an overlap.
"""
import logging
from datetime import datetime
from typing import List, NamedTuple, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.core.clock import Timestamp, resolve_timestamp
from ringside.exceptions import (
    InvalidRangeError, InvalidTransitionError, LifecycleError,
    OverlappingPeriodError, UnsupportedKindError
)
from ringside.orm.championship import TitleChampionship, ChampionType
from ringside.orm.lifecycle_event import EventType
from ringside.orm.roster import EntityType, Title
from ringside.services.event_log import EventLog
from ringside.services.period_store import PeriodStore
from ringside.services.roster_service import EntityLike, EntityRef, RosterService, as_ref
from ringside.services.status_resolver import CompositeStatus, resolve_status

logger = logging.getLogger(__name__)


class ChampionRef(NamedTuple):
    """Tagged champion reference: a wrestler or a tag team."""
    champion_type: ChampionType
    champion_id: int

    def to_dict(self) -> dict:
        return {"champion_type": ChampionType(self.champion_type).value, "champion_id": self.champion_id}


ChampionLike = Union[ChampionRef, EntityLike]


def as_champion(champion: ChampionLike) -> ChampionRef:
    if isinstance(champion, ChampionRef):
        return ChampionRef(ChampionType(champion.champion_type), champion.champion_id)
    ref = as_ref(champion)
    try:
        return ChampionRef(ChampionType(ref.entity_type.value), ref.entity_id)
    except ValueError:
        raise UnsupportedKindError(
            f"{ref.entity_type.value} cannot hold a title",
            reason="champion_type"
        )


def _title_ref(title: EntityLike) -> EntityRef:
    ref = as_ref(title)
    if ref.entity_type != EntityType.TITLE:
        raise UnsupportedKindError(
            f"{ref.entity_type.value} does not have championships",
            reason="championship"
        )
    return ref


class ChampionshipLedger:
    """Reign bookkeeping for titles."""

    OPERATION = "record championship change"

    @staticmethod
    def reign_length(championship: TitleChampionship, as_of: Optional[Timestamp] = None) -> int:
        """
        Whole days the reign lasted, or has lasted so far for an open reign.

        Never negative, even when as_of precedes won_at.
        """
        end = championship.lost_at or resolve_timestamp(as_of)
        return max(0, (end - championship.won_at).days)

    @staticmethod
    async def _open_reign(
        db: AsyncSession,
        title_id: int,
        lock: bool = False
    ) -> Optional[TitleChampionship]:
        query = select(TitleChampionship).where(
            TitleChampionship.title_id == title_id,
            TitleChampionship.lost_at.is_(None),
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def close_open_reign(
        db: AsyncSession,
        title_id: int,
        at: datetime,
        lost_event_match_id: Optional[int] = None
    ) -> Optional[TitleChampionship]:
        """
        Close the open reign at `at`, if there is one.

        Flushes only; the caller commits.
        """
        reign = await ChampionshipLedger._open_reign(db, title_id, lock=True)
        if reign is None:
            return None
        if at < reign.won_at:
            raise InvalidRangeError(
                f"Reign {reign.id} on title {title_id} cannot end {at.isoformat()}, "
                f"before it began {reign.won_at.isoformat()}"
            )
        reign.lost_at = at
        reign.lost_event_match_id = lost_event_match_id
        await db.flush()
        return reign

    @staticmethod
    async def _lock_title(db: AsyncSession, title: EntityLike, operation: str) -> Title:
        ref = _title_ref(title)
        locked = await RosterService.require_entity(db, EntityType.TITLE, ref.entity_id, lock=True)
        if locked.is_deleted:
            raise InvalidTransitionError(operation, "deleted")
        return locked

    @staticmethod
    async def record_championship_change(
        db: AsyncSession,
        title: EntityLike,
        champion: ChampionLike,
        at: Optional[Timestamp] = None,
        won_event_match_id: Optional[int] = None
    ) -> int:
        """
        Hand the title to a new champion.

        Closes the open reign (if any) at `at` and opens a reign for the
        champion starting at `at`. The match that produced the change, when
        given, is recorded as the new reign's won match and the old reign's
        lost match.

        Raises:
            InvalidTransitionError: title not active as of `at`, or title or
                champion soft-deleted
            InvalidRangeError: `at` is not after the open reign's won_at
            OverlappingPeriodError: `at` precedes the last closed reign's lost_at
            EntityNotFoundError: title or champion missing

        Returns:
            id of the new reign
        """
        at = resolve_timestamp(at)
        operation = ChampionshipLedger.OPERATION
        title_ref = _title_ref(title)
        new_champion = as_champion(champion)

        try:
            await ChampionshipLedger._lock_title(db, title_ref, operation)

            store = PeriodStore(db)
            snapshot = resolve_status(
                EntityType.TITLE,
                await store.periods_by_kind(EntityType.TITLE, title_ref.entity_id),
                at
            )
            if snapshot.status != CompositeStatus.ACTIVE:
                reason = "retired" if snapshot.status == CompositeStatus.RETIRED else "title_inactive"
                raise InvalidTransitionError(
                    operation, reason,
                    f"Cannot {operation}: title {title_ref.entity_id} is {snapshot.label.lower()}"
                )

            holder = await RosterService.require_entity(
                db, EntityType(new_champion.champion_type.value), new_champion.champion_id
            )
            if holder.is_deleted:
                raise InvalidTransitionError(
                    operation, "deleted",
                    f"Cannot {operation}: champion {new_champion.champion_type.value} "
                    f"{new_champion.champion_id} is deleted"
                )

            open_reign = await ChampionshipLedger._open_reign(db, title_ref.entity_id, lock=True)
            if open_reign is not None and at <= open_reign.won_at:
                raise InvalidRangeError(
                    f"Championship change at {at.isoformat()} must be after the current reign "
                    f"began {open_reign.won_at.isoformat()}"
                )

            last_lost = (await db.execute(
                select(func.max(TitleChampionship.lost_at))
                .where(TitleChampionship.title_id == title_ref.entity_id)
            )).scalar()
            if last_lost is not None and at < last_lost:
                raise OverlappingPeriodError(
                    f"Championship change at {at.isoformat()} precedes the end of the "
                    f"previous reign {last_lost.isoformat()}"
                )

            previous = None
            if open_reign is not None:
                previous = ChampionRef(ChampionType(open_reign.champion_type), open_reign.champion_id)
                await ChampionshipLedger.close_open_reign(
                    db, title_ref.entity_id, at, lost_event_match_id=won_event_match_id
                )

            reign = TitleChampionship(
                title_id=title_ref.entity_id,
                champion_type=new_champion.champion_type.value,
                champion_id=new_champion.champion_id,
                won_at=at,
                lost_at=None,
                won_event_match_id=won_event_match_id,
            )
            db.add(reign)
            try:
                await db.flush()
            except IntegrityError:
                raise OverlappingPeriodError(
                    f"Title {title_ref.entity_id} already has an open reign"
                )

            message = await EventLog.record(
                db, EventType.CHAMPIONSHIP_CHANGED, EntityType.TITLE, title_ref.entity_id, at,
                {
                    "championship_id": reign.id,
                    "champion": new_champion.to_dict(),
                    "previous_champion": previous.to_dict() if previous else None,
                    "won_event_match_id": won_event_match_id,
                }
            )
            await db.commit()

        except Exception as e:
            await db.rollback()
            if isinstance(e, LifecycleError):
                logger.warning(f"Rejected championship change on title {title_ref.entity_id}: {e.message}")
            raise

        logger.info(
            f"Title {title_ref.entity_id} won by {new_champion.champion_type.value} "
            f"{new_champion.champion_id} at {at.isoformat()}"
        )
        await EventLog.publish(message)
        return reign.id

    @staticmethod
    async def vacate_title(
        db: AsyncSession,
        title: EntityLike,
        at: Optional[Timestamp] = None
    ) -> Optional[TitleChampionship]:
        """
        Close the open reign with no successor. The title stays active.

        Returns:
            The closed reign, or None when the title was already vacant
        """
        at = resolve_timestamp(at)
        title_ref = _title_ref(title)

        try:
            await ChampionshipLedger._lock_title(db, title_ref, "vacate")
            reign = await ChampionshipLedger.close_open_reign(db, title_ref.entity_id, at)
            if reign is None:
                await db.rollback()
                return None

            message = await EventLog.record(
                db, EventType.TITLE_VACATED, EntityType.TITLE, title_ref.entity_id, at,
                {
                    "championship_id": reign.id,
                    "champion": {"champion_type": reign.champion_type, "champion_id": reign.champion_id},
                }
            )
            await db.commit()

        except Exception as e:
            await db.rollback()
            if isinstance(e, LifecycleError):
                logger.warning(f"Rejected vacate on title {title_ref.entity_id}: {e.message}")
            raise

        logger.info(f"Title {title_ref.entity_id} vacated at {at.isoformat()}")
        await EventLog.publish(message)
        return reign

    @staticmethod
    async def current_reign(
        db: AsyncSession,
        title: EntityLike,
        as_of: Optional[Timestamp] = None
    ) -> Optional[TitleChampionship]:
        """Reign in effect at as_of (won_at <= as_of < lost_at)."""
        as_of = resolve_timestamp(as_of)
        title_ref = _title_ref(title)
        result = await db.execute(
            select(TitleChampionship)
            .where(
                TitleChampionship.title_id == title_ref.entity_id,
                TitleChampionship.won_at <= as_of,
                (TitleChampionship.lost_at.is_(None)) | (TitleChampionship.lost_at > as_of),
            )
            .order_by(TitleChampionship.won_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def current_champion(
        db: AsyncSession,
        title: EntityLike,
        as_of: Optional[Timestamp] = None
    ) -> Optional[ChampionRef]:
        """Champion at as_of, or None when the title is vacant."""
        reign = await ChampionshipLedger.current_reign(db, title, as_of)
        if reign is None:
            return None
        return ChampionRef(ChampionType(reign.champion_type), reign.champion_id)

    @staticmethod
    async def history(db: AsyncSession, title: EntityLike) -> List[TitleChampionship]:
        """All reigns of a title, most recent first."""
        title_ref = _title_ref(title)
        result = await db.execute(
            select(TitleChampionship)
            .where(TitleChampionship.title_id == title_ref.entity_id)
            .order_by(TitleChampionship.won_at.desc(), TitleChampionship.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def current_titles_for(
        db: AsyncSession,
        champion: ChampionLike,
        as_of: Optional[Timestamp] = None
    ) -> List[Title]:
        """Titles the champion holds at as_of."""
        as_of = resolve_timestamp(as_of)
        ref = as_champion(champion)
        result = await db.execute(
            select(Title)
            .join(TitleChampionship, TitleChampionship.title_id == Title.id)
            .where(
                TitleChampionship.champion_type == ref.champion_type.value,
                TitleChampionship.champion_id == ref.champion_id,
                TitleChampionship.won_at <= as_of,
                (TitleChampionship.lost_at.is_(None)) | (TitleChampionship.lost_at > as_of),
            )
            .order_by(Title.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def is_champion(
        db: AsyncSession,
        champion: ChampionLike,
        as_of: Optional[Timestamp] = None
    ) -> bool:
        return bool(await ChampionshipLedger.current_titles_for(db, champion, as_of))
