"""
Title API Routes.

Championship changes, vacating, current champion and reign history.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ringside.config.feature_flags import feature_flags
from ringside.core.clock import resolve_timestamp
from ringside.database import get_db
from ringside.errors import ErrorResponse, raise_feature_disabled
from ringside.orm.championship import TitleChampionship
from ringside.orm.roster import EntityType
from ringside.schemas.roster import (
    ChampionshipChangeRequest, VacateRequest, ChampionshipResponse,
    ChampionResponse, HistoryResponse
)
from ringside.services.championship_service import ChampionRef, ChampionshipLedger
from ringside.services.roster_service import EntityRef, RosterService


router = APIRouter(prefix="/api/titles", tags=["titles"])


def check_ledger_enabled():
    """Check if the championship ledger API is enabled."""
    if not feature_flags.FEATURE_CHAMPIONSHIP_LEDGER:
        raise_feature_disabled("FEATURE_CHAMPIONSHIP_LEDGER")


def _reign_response(reign: TitleChampionship, as_of: datetime) -> ChampionshipResponse:
    return ChampionshipResponse(
        **reign.to_dict(),
        reign_length_days=ChampionshipLedger.reign_length(reign, as_of),
    )


@router.post(
    "/{title_id}/championships",
    response_model=ChampionshipResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def record_championship_change(
    title_id: int,
    request: ChampionshipChangeRequest,
    db: AsyncSession = Depends(get_db)
):
    """Hand the title to a wrestler or tag team, closing the current reign."""
    check_ledger_enabled()

    at = resolve_timestamp(request.at)
    title = EntityRef(EntityType.TITLE, title_id)
    await ChampionshipLedger.record_championship_change(
        db,
        title,
        ChampionRef(request.champion_type, request.champion_id),
        at=at,
        won_event_match_id=request.won_event_match_id,
    )
    reign = await ChampionshipLedger.current_reign(db, title, at)
    return _reign_response(reign, at)


@router.post("/{title_id}/vacate", response_model=ChampionResponse)
async def vacate_title(
    title_id: int,
    request: Optional[VacateRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    check_ledger_enabled()

    at = resolve_timestamp(request.at if request else None)
    await ChampionshipLedger.vacate_title(db, EntityRef(EntityType.TITLE, title_id), at)
    return ChampionResponse(title_id=title_id, vacant=True, as_of=at.isoformat())


@router.get("/{title_id}/champion", response_model=ChampionResponse)
async def get_current_champion(
    title_id: int,
    as_of: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    check_ledger_enabled()

    as_of = resolve_timestamp(as_of)
    title = EntityRef(EntityType.TITLE, title_id)
    await RosterService.require_entity(db, EntityType.TITLE, title_id)
    reign = await ChampionshipLedger.current_reign(db, title, as_of)
    return ChampionResponse(
        title_id=title_id,
        vacant=reign is None,
        as_of=as_of.isoformat(),
        champion=_reign_response(reign, as_of) if reign else None,
    )


@router.get("/{title_id}/history", response_model=HistoryResponse)
async def get_history(
    title_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Reigns, most recent first."""
    check_ledger_enabled()

    await RosterService.require_entity(db, EntityType.TITLE, title_id)
    as_of = resolve_timestamp(None)
    reigns = await ChampionshipLedger.history(db, EntityRef(EntityType.TITLE, title_id))
    return HistoryResponse(
        title_id=title_id,
        reigns=[_reign_response(r, as_of) for r in reigns],
    )
