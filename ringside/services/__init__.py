from .period_store import PeriodStore
from .status_resolver import CompositeStatus, StatusSnapshot, PeriodSpan, resolve_status, is_bookable, status_label
from .roster_service import RosterService, EntityRef, as_ref
from .championship_service import ChampionshipLedger, ChampionRef
from .membership_service import MembershipService
from .lifecycle_service import LifecycleService, TransitionResult
from .roster_query import RosterQuery
from .event_log import EventLog
