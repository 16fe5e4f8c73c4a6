"""
Pydantic Schemas for the roster and title routes.

Request bodies carry optional timestamps; when omitted the service uses
the clock's now.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from ringside.orm.championship import ChampionType
from ringside.orm.roster import EntityType


# ============================================================================
# Roster Schemas
# ============================================================================

class CreateEntityRequest(BaseModel):
    """Schema for creating a roster entity."""
    name: str = Field(..., min_length=1, max_length=255, description="Display name")


class TransitionRequest(BaseModel):
    """Schema for a lifecycle verb."""
    at: Optional[datetime] = Field(None, description="Effective time; defaults to now")
    cascade: bool = Field(False, description="employ/activate only: also start unemployed members")


class JoinRequest(BaseModel):
    """Schema for adding a member to a group."""
    member_type: EntityType
    member_id: int = Field(..., ge=1)
    at: Optional[datetime] = Field(None, description="Join time; defaults to now")


class MembershipResponse(BaseModel):
    id: int
    group_type: str
    group_id: int
    member_type: str
    member_id: int
    joined_at: str
    left_at: Optional[str] = None


class MemberRef(BaseModel):
    entity_type: str
    entity_id: int


class MembersResponse(BaseModel):
    group_type: str
    group_id: int
    as_of: str
    members: List[MemberRef]


class EntityResponse(BaseModel):
    """Schema for a roster entity."""
    id: int
    entity_type: str
    name: str
    deleted_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class EntityListResponse(BaseModel):
    entity_type: str
    filter: Optional[str] = None
    as_of: str
    count: int
    items: List[EntityResponse]


class StatusResponse(BaseModel):
    """Schema for a resolved status."""
    entity_type: str
    entity_id: int
    status: str
    label: str
    is_bookable: bool
    as_of: str


class TransitionResponse(BaseModel):
    """Schema for a committed transition."""
    operation: str
    entity_type: str
    entity_id: int
    at: str
    previous_status: str
    status: str
    label: str
    is_bookable: bool
    event: Dict[str, Any]
    cascaded: List[MemberRef] = []


class PeriodResponse(BaseModel):
    id: int
    kind: str
    started_at: str
    ended_at: Optional[str] = None


# ============================================================================
# Title Schemas
# ============================================================================

class ChampionshipChangeRequest(BaseModel):
    """Schema for handing a title to a new champion."""
    champion_type: ChampionType = Field(..., description="wrestler or tag_team")
    champion_id: int = Field(..., gt=0)
    at: Optional[datetime] = Field(None, description="Time of the change; defaults to now")
    won_event_match_id: Optional[int] = Field(None, description="Match that produced the change")


class VacateRequest(BaseModel):
    at: Optional[datetime] = None


class ChampionshipResponse(BaseModel):
    """Schema for one reign."""
    id: int
    title_id: int
    champion_type: str
    champion_id: int
    won_at: str
    lost_at: Optional[str] = None
    won_event_match_id: Optional[int] = None
    lost_event_match_id: Optional[int] = None
    reign_length_days: int


class ChampionResponse(BaseModel):
    title_id: int
    vacant: bool
    as_of: str
    champion: Optional[ChampionshipResponse] = None


class HistoryResponse(BaseModel):
    title_id: int
    reigns: List[ChampionshipResponse]
