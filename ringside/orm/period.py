"""
Status period model.

One row per time range during which a fact held for an entity (employed,
activated, injured, suspended, retired). Rows are closed by setting
ended_at and are never deleted.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, CheckConstraint, Index, text
)

from ringside.orm.base import BaseModel


class StatusPeriod(BaseModel):
    """
    A single [started_at, ended_at) interval for one entity and kind.

    ended_at NULL means the period is open. The partial unique index allows
    at most one open period per (entity_type, entity_id, kind).
    """
    __tablename__ = "status_periods"

    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "ended_at IS NULL OR ended_at >= started_at",
            name="ck_status_period_range"
        ),
        Index("idx_status_period_entity_kind", "entity_type", "entity_id", "kind"),
        Index(
            "uq_status_period_open",
            "entity_type", "entity_id", "kind",
            unique=True,
            sqlite_where=text("ended_at IS NULL"),
            postgresql_where=text("ended_at IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "kind": self.kind,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    def __repr__(self):
        return (f"<StatusPeriod(id={self.id}, {self.entity_type}:{self.entity_id}, "
                f"kind={self.kind}, {self.started_at} -> {self.ended_at})>")
