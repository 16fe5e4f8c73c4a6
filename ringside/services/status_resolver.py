"""
Status Resolver.

Pure functions deriving one composite status and a separate booking
eligibility flag from the full period history of a single entity. Nothing
here touches the database; callers pass rows (or PeriodSpan tuples) grouped
by kind.

Precedence, highest first:
    Retired > Suspended > Injured > Active
with FutureEmployment, Released and Unemployed reported only when no tenure
period is in effect.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Mapping, NamedTuple, Optional, Sequence

from ringside.core.clock import Timestamp, resolve_timestamp
from ringside.orm.roster import EntityType, PeriodKind, supports_kind, tenure_kind_for


class CompositeStatus(str, enum.Enum):
    """Externally reported status of a roster entity."""
    UNEMPLOYED = "unemployed"
    FUTURE_EMPLOYMENT = "future_employment"
    ACTIVE = "active"
    INJURED = "injured"
    SUSPENDED = "suspended"
    RETIRED = "retired"
    RELEASED = "released"


# Display labels; activation-kind entities (stables, titles) use their own wording
EMPLOYMENT_LABELS = {
    CompositeStatus.UNEMPLOYED: "Unemployed",
    CompositeStatus.FUTURE_EMPLOYMENT: "Future Employment",
    CompositeStatus.ACTIVE: "Bookable",
    CompositeStatus.INJURED: "Injured",
    CompositeStatus.SUSPENDED: "Suspended",
    CompositeStatus.RETIRED: "Retired",
    CompositeStatus.RELEASED: "Released",
}

ACTIVATION_LABELS = {
    CompositeStatus.UNEMPLOYED: "Unactivated",
    CompositeStatus.FUTURE_EMPLOYMENT: "Future Activation",
    CompositeStatus.ACTIVE: "Active",
    CompositeStatus.INJURED: "Injured",
    CompositeStatus.SUSPENDED: "Suspended",
    CompositeStatus.RETIRED: "Retired",
    CompositeStatus.RELEASED: "Inactive",
}


class PeriodSpan(NamedTuple):
    """Detached period, used where no ORM row is at hand."""
    started_at: datetime
    ended_at: Optional[datetime] = None


@dataclass(frozen=True)
class StatusSnapshot:
    """Result of resolving one entity as of one instant."""
    entity_type: EntityType
    status: CompositeStatus
    is_bookable: bool
    as_of: datetime
    tenure_kind: PeriodKind
    tenure_in_effect: bool = False
    retired: bool = False
    suspended: bool = False
    injured: bool = False

    @property
    def label(self) -> str:
        return status_label(self.entity_type, self.status)

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type.value,
            "status": self.status.value,
            "label": self.label,
            "is_bookable": self.is_bookable,
            "as_of": self.as_of.isoformat(),
        }


def in_effect(period, as_of: datetime) -> bool:
    """started_at <= as_of < ended_at, with an open end counting as forever."""
    if period.started_at > as_of:
        return False
    return period.ended_at is None or period.ended_at > as_of


def any_in_effect(periods: Iterable, as_of: datetime) -> bool:
    return any(in_effect(period, as_of) for period in periods)


def _normalize_kinds(periods_by_kind: Mapping) -> Dict[PeriodKind, Sequence]:
    return {PeriodKind(kind): periods or () for kind, periods in periods_by_kind.items()}


def resolve_status(
    entity_type: EntityType,
    periods_by_kind: Mapping,
    as_of: Optional[Timestamp] = None
) -> StatusSnapshot:
    """
    Derive the composite status of one entity.

    Args:
        entity_type: Type of the entity; decides the tenure kind and whether
            injuries count
        periods_by_kind: {PeriodKind: periods}; missing kinds mean no history
        as_of: Instant to evaluate at, defaults to the clock's now

    Returns:
        StatusSnapshot with status and is_bookable
    """
    entity_type = EntityType(entity_type)
    as_of = resolve_timestamp(as_of)
    periods = _normalize_kinds(periods_by_kind)
    tenure_kind = tenure_kind_for(entity_type)

    tenure = periods.get(tenure_kind, ())
    tenure_in_effect = any_in_effect(tenure, as_of)
    retired = any_in_effect(periods.get(PeriodKind.RETIREMENT, ()), as_of)
    suspended = (
        supports_kind(entity_type, PeriodKind.SUSPENSION)
        and any_in_effect(periods.get(PeriodKind.SUSPENSION, ()), as_of)
    )
    injured = (
        supports_kind(entity_type, PeriodKind.INJURY)
        and any_in_effect(periods.get(PeriodKind.INJURY, ()), as_of)
    )

    # Retiring closes the tenure period, so retirement is checked before tenure
    if retired:
        status = CompositeStatus.RETIRED
    elif tenure_in_effect:
        if suspended:
            status = CompositeStatus.SUSPENDED
        elif injured:
            status = CompositeStatus.INJURED
        else:
            status = CompositeStatus.ACTIVE
    elif any(p.ended_at is None and p.started_at > as_of for p in tenure):
        status = CompositeStatus.FUTURE_EMPLOYMENT
    elif any(p.started_at <= as_of for p in tenure):
        status = CompositeStatus.RELEASED
    else:
        status = CompositeStatus.UNEMPLOYED

    return StatusSnapshot(
        entity_type=entity_type,
        status=status,
        is_bookable=tenure_in_effect and not (retired or suspended or injured),
        as_of=as_of,
        tenure_kind=tenure_kind,
        tenure_in_effect=tenure_in_effect,
        retired=retired,
        suspended=suspended,
        injured=injured,
    )


def is_bookable(
    entity_type: EntityType,
    periods_by_kind: Mapping,
    as_of: Optional[Timestamp] = None
) -> bool:
    return resolve_status(entity_type, periods_by_kind, as_of).is_bookable


def status_label(entity_type: EntityType, status: CompositeStatus) -> str:
    """Presentation label, worded for the entity's tenure kind."""
    if tenure_kind_for(EntityType(entity_type)) == PeriodKind.ACTIVATION:
        return ACTIVATION_LABELS[status]
    return EMPLOYMENT_LABELS[status]
