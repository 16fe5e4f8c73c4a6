from .base import Base

# Roster entities
from .roster import (
    EntityType, PeriodKind,
    Wrestler, TagTeam, Manager, Referee, Stable, Title,
)

# Period history
from .period import StatusPeriod

# Championship ledger
from .championship import TitleChampionship, ChampionType

# Event log
from .lifecycle_event import LifecycleEvent, EventType

# Group membership
from .membership import Membership, MEMBER_TYPES, accepts_member, is_exclusive
