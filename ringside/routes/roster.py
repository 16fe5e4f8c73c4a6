"""
Roster API Routes.

Lifecycle verbs, status reads, filtered listings and the entity registry.
Business rules live in the services; failures surface as LifecycleError
and are rendered by the application's exception handlers.
"""
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.config.feature_flags import feature_flags
from ringside.core.clock import resolve_timestamp
from ringside.database import get_db
from ringside.errors import ErrorResponse, raise_bad_request, raise_feature_disabled, raise_not_found
from ringside.orm.roster import EntityType
from ringside.schemas.roster import (
    CreateEntityRequest, TransitionRequest, EntityResponse, EntityListResponse,
    StatusResponse, TransitionResponse, PeriodResponse,
    JoinRequest, MembershipResponse, MembersResponse, MemberRef
)
from ringside.services.lifecycle_service import LifecycleService
from ringside.services.membership_service import MembershipService
from ringside.services.roster_query import RosterQuery
from ringside.services.roster_service import EntityRef, RosterService


router = APIRouter(prefix="/api/roster", tags=["roster"])

# ?filter= values accepted by the listing route
LIST_FILTERS = (
    "bookable", "unbookable", "injured", "suspended", "retired", "released",
    "future_employed", "unemployed", "active", "inactive", "unactivated",
    "future_activated", "vacant", "defended", "new_titles",
)


def check_roster_enabled():
    """Check if the roster API is enabled."""
    if not feature_flags.FEATURE_ROSTER_API:
        raise_feature_disabled("FEATURE_ROSTER_API")


def _entity_response(entity) -> EntityResponse:
    return EntityResponse(**entity.to_dict())


# =============================================================================
# Registry
# =============================================================================

@router.get("/{entity_type}", response_model=EntityListResponse)
async def list_entities(
    entity_type: EntityType,
    status_filter: Optional[str] = Query(None, alias="filter", description="Status predicate, e.g. bookable"),
    as_of: Optional[datetime] = Query(None),
    include_deleted: bool = Query(False),
    db: AsyncSession = Depends(get_db)
):
    """
    List entities of one type, optionally narrowed by a status predicate.

    Soft-deleted entities are hidden unless include_deleted is set.
    """
    check_roster_enabled()

    query = RosterQuery(entity_type, as_of=as_of)
    if status_filter is not None:
        if status_filter not in LIST_FILTERS:
            raise_bad_request(
                f"Unknown filter '{status_filter}'",
                details={"field": "filter", "allowed": list(LIST_FILTERS)}
            )
        query = getattr(query, status_filter)()
    if include_deleted:
        query = query.with_trashed()

    entities = await query.all(db)
    return EntityListResponse(
        entity_type=entity_type.value,
        filter=status_filter,
        as_of=query.as_of.isoformat(),
        count=len(entities),
        items=[_entity_response(e) for e in entities],
    )


@router.post("/{entity_type}", response_model=EntityResponse, status_code=201)
async def create_entity(
    entity_type: EntityType,
    request: CreateEntityRequest,
    db: AsyncSession = Depends(get_db)
):
    check_roster_enabled()
    entity = await RosterService.create_entity(db, entity_type, request.name)
    return _entity_response(entity)


@router.get("/{entity_type}/{entity_id}", response_model=EntityResponse)
async def get_entity(
    entity_type: EntityType,
    entity_id: int,
    db: AsyncSession = Depends(get_db)
):
    check_roster_enabled()
    entity = await RosterService.get_entity(db, entity_type, entity_id)
    if entity is None:
        raise_not_found(entity_type.value, entity_id)
    return _entity_response(entity)


@router.delete("/{entity_type}/{entity_id}", response_model=EntityResponse)
async def delete_entity(
    entity_type: EntityType,
    entity_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Soft delete. Period history is kept."""
    check_roster_enabled()
    entity = await RosterService.soft_delete(db, EntityRef(entity_type, entity_id))
    return _entity_response(entity)


@router.post("/{entity_type}/{entity_id}/restore", response_model=EntityResponse)
async def restore_entity(
    entity_type: EntityType,
    entity_id: int,
    db: AsyncSession = Depends(get_db)
):
    check_roster_enabled()
    entity = await RosterService.restore(db, EntityRef(entity_type, entity_id))
    return _entity_response(entity)


# =============================================================================
# Status
# =============================================================================

@router.get("/{entity_type}/{entity_id}/status", response_model=StatusResponse)
async def get_status(
    entity_type: EntityType,
    entity_id: int,
    as_of: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    check_roster_enabled()
    snapshot = await LifecycleService.status(db, EntityRef(entity_type, entity_id), as_of)
    return StatusResponse(
        entity_type=entity_type.value,
        entity_id=entity_id,
        status=snapshot.status.value,
        label=snapshot.label,
        is_bookable=snapshot.is_bookable,
        as_of=snapshot.as_of.isoformat(),
    )


@router.get("/{entity_type}/{entity_id}/periods", response_model=List[PeriodResponse])
async def get_periods(
    entity_type: EntityType,
    entity_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Full period history, oldest first."""
    check_roster_enabled()
    grouped = await LifecycleService.periods(db, EntityRef(entity_type, entity_id))
    periods = sorted(
        (p for rows in grouped.values() for p in rows),
        key=lambda p: (p.started_at, p.id)
    )
    return [
        PeriodResponse(
            id=p.id,
            kind=p.kind,
            started_at=p.started_at.isoformat(),
            ended_at=p.ended_at.isoformat() if p.ended_at else None,
        )
        for p in periods
    ]


# =============================================================================
# Membership
# =============================================================================

@router.get("/{entity_type}/{entity_id}/members", response_model=MembersResponse)
async def list_members(
    entity_type: EntityType,
    entity_id: int,
    as_of: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Current members of a tag team or stable, or managers of a wrestler."""
    check_roster_enabled()
    group = EntityRef(entity_type, entity_id)
    await RosterService.require_entity(db, entity_type, entity_id)
    as_of = resolve_timestamp(as_of)
    members = await MembershipService.current_members(db, group, as_of)
    return MembersResponse(
        group_type=entity_type.value,
        group_id=entity_id,
        as_of=as_of.isoformat(),
        members=[MemberRef(entity_type=m.entity_type.value, entity_id=m.entity_id) for m in members],
    )


@router.post(
    "/{entity_type}/{entity_id}/members",
    response_model=MembershipResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def join_group(
    entity_type: EntityType,
    entity_id: int,
    request: JoinRequest,
    db: AsyncSession = Depends(get_db)
):
    check_roster_enabled()
    membership = await MembershipService.join(
        db,
        EntityRef(entity_type, entity_id),
        EntityRef(request.member_type, request.member_id),
        resolve_timestamp(request.at)
    )
    return MembershipResponse(**membership.to_dict())


@router.post(
    "/{entity_type}/{entity_id}/members/{member_type}/{member_id}/leave",
    response_model=MembershipResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def leave_group(
    entity_type: EntityType,
    entity_id: int,
    member_type: EntityType,
    member_id: int,
    request: Optional[TransitionRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    check_roster_enabled()
    at = request.at if request else None
    membership = await MembershipService.leave(
        db,
        EntityRef(entity_type, entity_id),
        EntityRef(member_type, member_id),
        resolve_timestamp(at)
    )
    return MembershipResponse(**membership.to_dict())


# =============================================================================
# Lifecycle Verbs
# =============================================================================

@router.post(
    "/{entity_type}/{entity_id}/{operation}",
    response_model=TransitionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def apply_transition(
    entity_type: EntityType,
    entity_id: int,
    operation: str,
    request: Optional[TransitionRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a lifecycle verb: employ, release, injure, heal, suspend,
    reinstate, retire, unretire, activate or deactivate.
    """
    check_roster_enabled()

    if operation not in LifecycleService.OPERATIONS:
        raise_not_found("Operation", operation)

    at = request.at if request else None
    cascade = request.cascade if request else False
    result = await LifecycleService.apply(
        db, EntityRef(entity_type, entity_id), operation, resolve_timestamp(at), cascade
    )
    return TransitionResponse(**result.to_dict())
