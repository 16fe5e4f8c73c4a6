"""
Lifecycle event log.

Rows are added inside the caller's transaction; publishing happens only
after the caller has committed.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.config.feature_flags import FeatureFlags
from ringside.events import get_publisher
from ringside.orm.lifecycle_event import LifecycleEvent, EventType
from ringside.orm.roster import EntityType

logger = logging.getLogger(__name__)


class EventLog:
    """Append-only event rows plus post-commit delivery."""

    @staticmethod
    def build_message(
        event_type: EventType,
        entity_type: EntityType,
        entity_id: int,
        occurred_at: datetime,
        payload: Optional[Dict[str, Any]] = None,
        event_id: Optional[int] = None
    ) -> Dict[str, Any]:
        return {
            "event_id": event_id,
            "event_type": EventType(event_type).value,
            "entity_type": EntityType(entity_type).value,
            "entity_id": entity_id,
            "occurred_at": occurred_at.isoformat(),
            "payload": payload or {},
        }

    @staticmethod
    async def record(
        db: AsyncSession,
        event_type: EventType,
        entity_type: EntityType,
        entity_id: int,
        occurred_at: datetime,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Add the event row (when FEATURE_EVENT_LOG is on) and return the
        message to publish once the transaction commits.
        """
        event_id = None
        if FeatureFlags.FEATURE_EVENT_LOG:
            event = LifecycleEvent(
                event_type=EventType(event_type).value,
                entity_type=EntityType(entity_type).value,
                entity_id=entity_id,
                occurred_at=occurred_at,
                payload=payload or {},
            )
            db.add(event)
            await db.flush()
            event_id = event.id

        return EventLog.build_message(
            event_type, entity_type, entity_id, occurred_at, payload, event_id
        )

    @staticmethod
    async def publish(message: Dict[str, Any]) -> None:
        """
        Deliver a committed event.

        The transition is already durable at this point, so a delivery
        failure is logged and not raised.
        """
        try:
            await get_publisher().publish_event(message)
        except Exception as e:
            logger.error(
                f"Failed to publish {message.get('event_type')} for "
                f"{message.get('entity_type')} {message.get('entity_id')}: {str(e)}"
            )

    @staticmethod
    async def events_for(
        db: AsyncSession,
        entity_type: EntityType,
        entity_id: int
    ) -> List[LifecycleEvent]:
        """Logged events of one entity in the order they were written."""
        result = await db.execute(
            select(LifecycleEvent)
            .where(
                LifecycleEvent.entity_type == EntityType(entity_type).value,
                LifecycleEvent.entity_id == entity_id,
            )
            .order_by(LifecycleEvent.id)
        )
        return list(result.scalars().all())
