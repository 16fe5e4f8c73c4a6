"""
Title championship (reign) model.

Each row is one reign of one champion over one title. The champion is a
tagged reference (champion_type, champion_id) to either a wrestler or a
tag team.
"""
import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index, text
)
from sqlalchemy.orm import relationship

from ringside.orm.base import BaseModel


class ChampionType(str, enum.Enum):
    """Entity types that can hold a title."""
    WRESTLER = "wrestler"
    TAG_TEAM = "tag_team"


class TitleChampionship(BaseModel):
    """
    One championship reign.

    Attributes:
        title_id: FK to titles
        champion_type / champion_id: who held the title
        won_at / lost_at: reign bounds, lost_at NULL while the reign is open
        won_event_match_id / lost_event_match_id: optional match provenance
    """
    __tablename__ = "title_championships"

    title_id = Column(
        Integer,
        ForeignKey("titles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    champion_type = Column(String(20), nullable=False)
    champion_id = Column(Integer, nullable=False)
    won_at = Column(DateTime, nullable=False)
    lost_at = Column(DateTime, nullable=True)
    won_event_match_id = Column(Integer, nullable=True)
    lost_event_match_id = Column(Integer, nullable=True)

    title = relationship("Title")

    __table_args__ = (
        CheckConstraint(
            "lost_at IS NULL OR lost_at >= won_at",
            name="ck_championship_range"
        ),
        CheckConstraint(
            f"champion_type IN ('{ChampionType.WRESTLER.value}', '{ChampionType.TAG_TEAM.value}')",
            name="ck_championship_champion_type"
        ),
        Index("idx_championship_champion", "champion_type", "champion_id"),
        Index(
            "uq_championship_open_reign",
            "title_id",
            unique=True,
            sqlite_where=text("lost_at IS NULL"),
            postgresql_where=text("lost_at IS NULL"),
        ),
    )

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title_id": self.title_id,
            "champion_type": self.champion_type,
            "champion_id": self.champion_id,
            "won_at": self.won_at.isoformat() if self.won_at else None,
            "lost_at": self.lost_at.isoformat() if self.lost_at else None,
            "won_event_match_id": self.won_event_match_id,
            "lost_event_match_id": self.lost_event_match_id,
        }

    def __repr__(self):
        return (f"<TitleChampionship(id={self.id}, title_id={self.title_id}, "
                f"champion={self.champion_type}:{self.champion_id})>")
