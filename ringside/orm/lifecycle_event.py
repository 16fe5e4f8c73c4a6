"""
Lifecycle Event Model
Append-only log of successful lifecycle transitions and title changes.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index

from ringside.orm.base import BaseModel


class EventType(str, enum.Enum):
    """Domain events emitted by the lifecycle engine and championship ledger."""
    ENTITY_CREATED = "entity_created"
    ENTITY_EMPLOYED = "entity_employed"
    ENTITY_RELEASED = "entity_released"
    ENTITY_INJURED = "entity_injured"
    ENTITY_HEALED = "entity_healed"
    ENTITY_SUSPENDED = "entity_suspended"
    ENTITY_REINSTATED = "entity_reinstated"
    ENTITY_RETIRED = "entity_retired"
    ENTITY_UNRETIRED = "entity_unretired"
    ENTITY_ACTIVATED = "entity_activated"
    ENTITY_DEACTIVATED = "entity_deactivated"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    ENTITY_DELETED = "entity_deleted"
    ENTITY_RESTORED = "entity_restored"
    CHAMPIONSHIP_CHANGED = "championship_changed"
    TITLE_VACATED = "title_vacated"


class LifecycleEvent(BaseModel):
    """
    Immutable event log row.

    Written in the same transaction as the period mutation it describes, so
    an event exists if and only if the transition committed.
    """
    __tablename__ = "lifecycle_events"

    event_type = Column(String(40), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Integer, nullable=False)
    occurred_at = Column(DateTime, nullable=False)
    payload = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_lifecycle_event_entity", "entity_type", "entity_id", "occurred_at"),
    )

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "payload": self.payload or {},
        }

    def __repr__(self):
        return (f"<LifecycleEvent(id={self.id}, type={self.event_type}, "
                f"entity={self.entity_type}:{self.entity_id})>")
