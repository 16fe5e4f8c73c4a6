"""
Group membership.

Join and leave stints for tag teams, stables and management, kept under
the same rules as status periods: one open stint per (group, member)
pair, no stint starting before the previous one ended, and left_at never
before joined_at.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.core.clock import Timestamp, resolve_timestamp
from ringside.exceptions import (
    InvalidRangeError, InvalidTransitionError, LifecycleError,
    OverlappingPeriodError, UnsupportedKindError
)
from ringside.orm.lifecycle_event import EventType
from ringside.orm.membership import Membership, accepts_member, is_exclusive
from ringside.orm.roster import EntityType
from ringside.services.event_log import EventLog
from ringside.services.roster_service import EntityLike, EntityRef, RosterService, as_ref

logger = logging.getLogger(__name__)


def _describe(ref: EntityRef) -> str:
    return f"{ref.entity_type.value} {ref.entity_id}"


def _check_pair(group: EntityRef, member: EntityRef) -> None:
    if not accepts_member(group.entity_type, member.entity_type):
        raise UnsupportedKindError(
            f"A {member.entity_type.value} cannot be a member of a {group.entity_type.value}",
            reason="membership"
        )


class MembershipService:
    """Membership stints between roster entities."""

    @staticmethod
    def _pair_query(group: EntityRef, member: EntityRef):
        return select(Membership).where(
            Membership.group_type == group.entity_type.value,
            Membership.group_id == group.entity_id,
            Membership.member_type == member.entity_type.value,
            Membership.member_id == member.entity_id,
        )

    @staticmethod
    async def open_membership(
        db: AsyncSession,
        group: EntityLike,
        member: EntityLike
    ) -> Optional[Membership]:
        query = MembershipService._pair_query(as_ref(group), as_ref(member))
        result = await db.execute(query.where(Membership.left_at.is_(None)))
        return result.scalar_one_or_none()

    @staticmethod
    async def _latest_left(db: AsyncSession, group: EntityRef, member: EntityRef) -> Optional[datetime]:
        result = await db.execute(
            select(func.max(Membership.left_at)).where(
                Membership.group_type == group.entity_type.value,
                Membership.group_id == group.entity_id,
                Membership.member_type == member.entity_type.value,
                Membership.member_id == member.entity_id,
            )
        )
        return result.scalar()

    @staticmethod
    async def _open_elsewhere(
        db: AsyncSession,
        group: EntityRef,
        member: EntityRef
    ) -> Optional[Membership]:
        result = await db.execute(
            select(Membership)
            .where(
                Membership.group_type == group.entity_type.value,
                Membership.member_type == member.entity_type.value,
                Membership.member_id == member.entity_id,
                Membership.left_at.is_(None),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def join(
        db: AsyncSession,
        group: EntityLike,
        member: EntityLike,
        at: Optional[Timestamp] = None
    ) -> Membership:
        """
        Add a member to a group at `at`.

        Raises:
            UnsupportedKindError: the group type does not take this member type
            InvalidTransitionError: group or member soft-deleted (reason
                "deleted"), or the member already belongs to another group of
                the same type (reason "already_member")
            OverlappingPeriodError: the member is already in this group, or
                `at` precedes the end of its previous stint
            EntityNotFoundError: group or member missing
        """
        at = resolve_timestamp(at)
        group_ref = as_ref(group)
        member_ref = as_ref(member)
        _check_pair(group_ref, member_ref)

        try:
            for ref in (group_ref, member_ref):
                entity = await RosterService.require_entity(db, ref.entity_type, ref.entity_id, lock=True)
                if entity.is_deleted:
                    raise InvalidTransitionError(
                        "join", "deleted", f"Cannot join: {_describe(ref)} is deleted"
                    )

            if await MembershipService.open_membership(db, group_ref, member_ref) is not None:
                raise OverlappingPeriodError(
                    f"{_describe(member_ref)} is already a member of {_describe(group_ref)}"
                )

            last_left = await MembershipService._latest_left(db, group_ref, member_ref)
            if last_left is not None and at < last_left:
                raise OverlappingPeriodError(
                    f"{_describe(member_ref)} cannot rejoin {_describe(group_ref)} at "
                    f"{at.isoformat()}, before it left {last_left.isoformat()}"
                )

            if is_exclusive(group_ref.entity_type, member_ref.entity_type):
                other = await MembershipService._open_elsewhere(db, group_ref, member_ref)
                if other is not None:
                    raise InvalidTransitionError(
                        "join", "already_member",
                        f"Cannot join: {_describe(member_ref)} is already in "
                        f"{other.group_type} {other.group_id}"
                    )

            membership = Membership(
                group_type=group_ref.entity_type.value,
                group_id=group_ref.entity_id,
                member_type=member_ref.entity_type.value,
                member_id=member_ref.entity_id,
                joined_at=at,
                left_at=None,
            )
            db.add(membership)
            try:
                await db.flush()
            except IntegrityError:
                raise OverlappingPeriodError(
                    f"{_describe(member_ref)} is already a member of {_describe(group_ref)}"
                )

            message = await EventLog.record(
                db, EventType.MEMBER_JOINED, group_ref.entity_type, group_ref.entity_id, at,
                {
                    "membership_id": membership.id,
                    "member_type": member_ref.entity_type.value,
                    "member_id": member_ref.entity_id,
                }
            )
            await db.commit()

        except Exception as e:
            await db.rollback()
            if isinstance(e, LifecycleError):
                logger.warning(f"Rejected join of {_describe(member_ref)} to {_describe(group_ref)}: {e.message}")
            raise

        logger.info(f"{_describe(member_ref)} joined {_describe(group_ref)} at {at.isoformat()}")
        await EventLog.publish(message)
        return membership

    @staticmethod
    async def leave(
        db: AsyncSession,
        group: EntityLike,
        member: EntityLike,
        at: Optional[Timestamp] = None
    ) -> Membership:
        """
        End the member's open stint in the group at `at`.

        Raises:
            InvalidTransitionError: the member is not in the group (reason "not_member")
            InvalidRangeError: `at` precedes joined_at
        """
        at = resolve_timestamp(at)
        group_ref = as_ref(group)
        member_ref = as_ref(member)
        _check_pair(group_ref, member_ref)

        try:
            await RosterService.require_entity(db, group_ref.entity_type, group_ref.entity_id, lock=True)
            membership = await MembershipService.open_membership(db, group_ref, member_ref)
            if membership is None:
                raise InvalidTransitionError(
                    "leave", "not_member",
                    f"Cannot leave: {_describe(member_ref)} is not a member of {_describe(group_ref)}"
                )
            if at < membership.joined_at:
                raise InvalidRangeError(
                    f"{_describe(member_ref)} cannot leave {_describe(group_ref)} at "
                    f"{at.isoformat()}, before joining {membership.joined_at.isoformat()}"
                )

            membership.left_at = at
            await db.flush()

            message = await EventLog.record(
                db, EventType.MEMBER_LEFT, group_ref.entity_type, group_ref.entity_id, at,
                {
                    "membership_id": membership.id,
                    "member_type": member_ref.entity_type.value,
                    "member_id": member_ref.entity_id,
                }
            )
            await db.commit()

        except Exception as e:
            await db.rollback()
            if isinstance(e, LifecycleError):
                logger.warning(f"Rejected leave of {_describe(member_ref)} from {_describe(group_ref)}: {e.message}")
            raise

        logger.info(f"{_describe(member_ref)} left {_describe(group_ref)} at {at.isoformat()}")
        await EventLog.publish(message)
        return membership

    @staticmethod
    async def current_members(
        db: AsyncSession,
        group: EntityLike,
        as_of: Optional[Timestamp] = None,
        member_type: Optional[EntityType] = None
    ) -> List[EntityRef]:
        """Members in the group at as_of, in joining order."""
        as_of = resolve_timestamp(as_of)
        group_ref = as_ref(group)
        query = (
            select(Membership.member_type, Membership.member_id)
            .where(
                Membership.group_type == group_ref.entity_type.value,
                Membership.group_id == group_ref.entity_id,
                Membership.joined_at <= as_of,
                or_(Membership.left_at.is_(None), Membership.left_at > as_of),
            )
            .order_by(Membership.joined_at, Membership.id)
        )
        if member_type is not None:
            query = query.where(Membership.member_type == EntityType(member_type).value)

        result = await db.execute(query)
        return [EntityRef(EntityType(row.member_type), row.member_id) for row in result.all()]

    @staticmethod
    async def current_groups(
        db: AsyncSession,
        member: EntityLike,
        as_of: Optional[Timestamp] = None,
        group_type: Optional[EntityType] = None
    ) -> List[EntityRef]:
        """Groups the member belongs to at as_of."""
        as_of = resolve_timestamp(as_of)
        member_ref = as_ref(member)
        query = (
            select(Membership.group_type, Membership.group_id)
            .where(
                Membership.member_type == member_ref.entity_type.value,
                Membership.member_id == member_ref.entity_id,
                Membership.joined_at <= as_of,
                or_(Membership.left_at.is_(None), Membership.left_at > as_of),
            )
            .order_by(Membership.joined_at, Membership.id)
        )
        if group_type is not None:
            query = query.where(Membership.group_type == EntityType(group_type).value)

        result = await db.execute(query)
        return [EntityRef(EntityType(row.group_type), row.group_id) for row in result.all()]

    @staticmethod
    async def history(db: AsyncSession, group: EntityLike) -> List[Membership]:
        """Every stint in the group, oldest first."""
        group_ref = as_ref(group)
        result = await db.execute(
            select(Membership)
            .where(
                Membership.group_type == group_ref.entity_type.value,
                Membership.group_id == group_ref.entity_id,
            )
            .order_by(Membership.joined_at, Membership.id)
        )
        return list(result.scalars().all())
