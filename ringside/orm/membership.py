"""
Membership period model.

Who belongs to whom, and when: wrestlers in tag teams; wrestlers, tag
teams and managers in stables; managers managing wrestlers and tag teams.
Each row is one [joined_at, left_at) stint of one member in one group.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, CheckConstraint, Index, text
)

from ringside.orm.base import BaseModel
from ringside.orm.roster import EntityType


# group type -> member types it accepts
MEMBER_TYPES = {
    EntityType.TAG_TEAM: frozenset({EntityType.WRESTLER, EntityType.MANAGER}),
    EntityType.STABLE: frozenset({EntityType.WRESTLER, EntityType.TAG_TEAM, EntityType.MANAGER}),
    EntityType.WRESTLER: frozenset({EntityType.MANAGER}),
}


def accepts_member(group_type: EntityType, member_type: EntityType) -> bool:
    return member_type in MEMBER_TYPES.get(group_type, frozenset())


def is_exclusive(group_type: EntityType, member_type: EntityType) -> bool:
    """
    Whether the member may belong to only one group of this type at a time.

    A wrestler is in one tag team and one stable at most; a manager may
    manage any number of wrestlers and tag teams.
    """
    if member_type == EntityType.MANAGER:
        return group_type == EntityType.STABLE
    return True


class Membership(BaseModel):
    """
    One stint of a member in a group.

    left_at NULL means the member is still in the group. The partial
    unique index allows one open stint per (group, member) pair.
    """
    __tablename__ = "memberships"

    group_type = Column(String(20), nullable=False)
    group_id = Column(Integer, nullable=False)
    member_type = Column(String(20), nullable=False)
    member_id = Column(Integer, nullable=False)
    joined_at = Column(DateTime, nullable=False)
    left_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "left_at IS NULL OR left_at >= joined_at",
            name="ck_membership_range"
        ),
        Index("idx_membership_group", "group_type", "group_id"),
        Index("idx_membership_member", "member_type", "member_id"),
        Index(
            "uq_membership_open",
            "group_type", "group_id", "member_type", "member_id",
            unique=True,
            sqlite_where=text("left_at IS NULL"),
            postgresql_where=text("left_at IS NULL"),
        ),
    )

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "group_type": self.group_type,
            "group_id": self.group_id,
            "member_type": self.member_type,
            "member_id": self.member_id,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "left_at": self.left_at.isoformat() if self.left_at else None,
        }

    def __repr__(self):
        return (f"<Membership(id={self.id}, {self.member_type}:{self.member_id} in "
                f"{self.group_type}:{self.group_id}, {self.joined_at} -> {self.left_at})>")
