"""
ringside/orm/base.py
Base model for all ORM models
"""
from sqlalchemy import Column, Integer, DateTime, String
from sqlalchemy.orm import declarative_base

from ringside.core.clock import utcnow

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base model with common fields.
    All ORM models inherit from this.
    """
    __abstract__ = True
    
    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        index=True
    )
    
    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created"
    )
    
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated"
    )


class RosterEntity(BaseModel):
    """
    Abstract base for every entity that carries a period history.

    Concrete classes set ENTITY_TYPE; period and event rows reference the
    entity by (entity_type, id). Rows are soft-deleted through deleted_at so
    their history stays intact.
    """
    __abstract__ = True

    ENTITY_TYPE = None

    name = Column(String(255), nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "entity_type": self.ENTITY_TYPE.value if self.ENTITY_TYPE else None,
            "name": self.name,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, name={self.name!r})>"
