"""
Roster registry.

Create, fetch, soft-delete and restore roster entities. Soft deletion is
its own axis: period history is untouched, listings hide the row, and
lifecycle transitions refuse it until it is restored.
"""
import logging
from datetime import datetime
from typing import NamedTuple, Optional, Union

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.core.clock import Timestamp, resolve_timestamp
from ringside.exceptions import EntityNotFoundError, InvalidTransitionError, LifecycleError
from ringside.orm.base import RosterEntity
from ringside.orm.lifecycle_event import EventType
from ringside.orm.roster import EntityType, model_for
from ringside.services.event_log import EventLog

logger = logging.getLogger(__name__)


class EntityRef(NamedTuple):
    """(entity_type, entity_id) pair identifying a roster entity."""
    entity_type: EntityType
    entity_id: int


EntityLike = Union[RosterEntity, EntityRef]


def as_ref(entity: EntityLike) -> EntityRef:
    """
    Reference for an ORM entity or an existing EntityRef.

    Reads the identity key rather than the id attribute so an instance
    expired by an earlier rollback can still be passed in.
    """
    if isinstance(entity, EntityRef):
        return EntityRef(EntityType(entity.entity_type), entity.entity_id)
    identity = inspect(entity).identity
    if identity is None:
        raise ValueError(f"{entity!r} has not been persisted")
    return EntityRef(EntityType(entity.ENTITY_TYPE), identity[0])


class RosterService:
    """Entity registry operations."""

    @staticmethod
    async def get_entity(
        db: AsyncSession,
        entity_type: EntityType,
        entity_id: int,
        lock: bool = False
    ) -> Optional[RosterEntity]:
        """
        Get an entity, soft-deleted or not.

        Args:
            lock: Whether to use FOR UPDATE locking
        """
        model = model_for(entity_type)
        query = select(model).where(model.id == entity_id)

        if lock:
            query = query.with_for_update()

        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def require_entity(
        db: AsyncSession,
        entity_type: EntityType,
        entity_id: int,
        lock: bool = False
    ) -> RosterEntity:
        entity = await RosterService.get_entity(db, entity_type, entity_id, lock=lock)
        if entity is None:
            raise EntityNotFoundError(
                f"{EntityType(entity_type).value} {entity_id} not found",
                reason="not_found"
            )
        return entity

    @staticmethod
    async def create_entity(
        db: AsyncSession,
        entity_type: EntityType,
        name: str
    ) -> RosterEntity:
        """Create an entity with no period history (status Unemployed / Unactivated)."""
        entity_type = EntityType(entity_type)
        model = model_for(entity_type)
        entity = model(name=name)

        try:
            db.add(entity)
            await db.flush()
            message = await EventLog.record(
                db, EventType.ENTITY_CREATED, entity_type, entity.id,
                resolve_timestamp(None), {"name": name}
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Created {entity_type.value} {entity.id} ({name})")
        await EventLog.publish(message)
        return entity

    @staticmethod
    async def soft_delete(
        db: AsyncSession,
        entity: EntityLike,
        at: Optional[Timestamp] = None
    ) -> RosterEntity:
        """Flag the entity deleted; its periods and reigns stay as they are."""
        return await RosterService._set_deleted(db, entity, resolve_timestamp(at), delete=True)

    @staticmethod
    async def restore(db: AsyncSession, entity: EntityLike) -> RosterEntity:
        """Clear the deleted flag. Fails with reason "not_deleted" on a live entity."""
        return await RosterService._set_deleted(db, entity, resolve_timestamp(None), delete=False)

    @staticmethod
    async def _set_deleted(
        db: AsyncSession,
        entity: EntityLike,
        at: datetime,
        delete: bool
    ) -> RosterEntity:
        ref = as_ref(entity)
        operation = "delete" if delete else "restore"

        try:
            locked = await RosterService.require_entity(db, ref.entity_type, ref.entity_id, lock=True)

            if delete and locked.is_deleted:
                raise InvalidTransitionError(operation, "deleted")
            if not delete and not locked.is_deleted:
                raise InvalidTransitionError(operation, "not_deleted")

            locked.deleted_at = at if delete else None
            message = await EventLog.record(
                db,
                EventType.ENTITY_DELETED if delete else EventType.ENTITY_RESTORED,
                ref.entity_type, ref.entity_id, at
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            if isinstance(e, LifecycleError):
                logger.warning(f"Rejected {operation} on {ref.entity_type.value} {ref.entity_id}: {e.message}")
            raise

        logger.info(f"{operation.capitalize()}d {ref.entity_type.value} {ref.entity_id}")
        await EventLog.publish(message)
        return locked
