"""
Roster entity models.

Wrestlers, tag teams, managers, referees, stables and titles. Each entity
type declares which period kinds apply to it; the lifecycle engine and the
period store both consult ENTITY_PERIOD_KINDS.
"""
import enum

from ringside.orm.base import RosterEntity


class EntityType(str, enum.Enum):
    """Discriminator stored on period, championship and event rows."""
    WRESTLER = "wrestler"
    TAG_TEAM = "tag_team"
    MANAGER = "manager"
    REFEREE = "referee"
    STABLE = "stable"
    TITLE = "title"


class PeriodKind(str, enum.Enum):
    """Kinds of time-stamped period tracked per entity."""
    EMPLOYMENT = "employment"
    ACTIVATION = "activation"
    INJURY = "injury"
    SUSPENSION = "suspension"
    RETIREMENT = "retirement"


# Tenure kind: employment for people and tag teams, activation for stables and titles
TENURE_KIND = {
    EntityType.WRESTLER: PeriodKind.EMPLOYMENT,
    EntityType.TAG_TEAM: PeriodKind.EMPLOYMENT,
    EntityType.MANAGER: PeriodKind.EMPLOYMENT,
    EntityType.REFEREE: PeriodKind.EMPLOYMENT,
    EntityType.STABLE: PeriodKind.ACTIVATION,
    EntityType.TITLE: PeriodKind.ACTIVATION,
}

ENTITY_PERIOD_KINDS = {
    EntityType.WRESTLER: frozenset({
        PeriodKind.EMPLOYMENT, PeriodKind.INJURY,
        PeriodKind.SUSPENSION, PeriodKind.RETIREMENT,
    }),
    EntityType.MANAGER: frozenset({
        PeriodKind.EMPLOYMENT, PeriodKind.INJURY,
        PeriodKind.SUSPENSION, PeriodKind.RETIREMENT,
    }),
    EntityType.REFEREE: frozenset({
        PeriodKind.EMPLOYMENT, PeriodKind.INJURY,
        PeriodKind.SUSPENSION, PeriodKind.RETIREMENT,
    }),
    EntityType.TAG_TEAM: frozenset({
        PeriodKind.EMPLOYMENT, PeriodKind.SUSPENSION, PeriodKind.RETIREMENT,
    }),
    EntityType.STABLE: frozenset({
        PeriodKind.ACTIVATION, PeriodKind.SUSPENSION, PeriodKind.RETIREMENT,
    }),
    EntityType.TITLE: frozenset({
        PeriodKind.ACTIVATION, PeriodKind.RETIREMENT,
    }),
}


def supports_kind(entity_type: EntityType, kind: PeriodKind) -> bool:
    return kind in ENTITY_PERIOD_KINDS[entity_type]


def tenure_kind_for(entity_type: EntityType) -> PeriodKind:
    return TENURE_KIND[entity_type]


class Wrestler(RosterEntity):
    __tablename__ = "wrestlers"
    ENTITY_TYPE = EntityType.WRESTLER


class TagTeam(RosterEntity):
    __tablename__ = "tag_teams"
    ENTITY_TYPE = EntityType.TAG_TEAM


class Manager(RosterEntity):
    __tablename__ = "managers"
    ENTITY_TYPE = EntityType.MANAGER


class Referee(RosterEntity):
    __tablename__ = "referees"
    ENTITY_TYPE = EntityType.REFEREE


class Stable(RosterEntity):
    __tablename__ = "stables"
    ENTITY_TYPE = EntityType.STABLE


class Title(RosterEntity):
    __tablename__ = "titles"
    ENTITY_TYPE = EntityType.TITLE


MODEL_FOR_TYPE = {
    EntityType.WRESTLER: Wrestler,
    EntityType.TAG_TEAM: TagTeam,
    EntityType.MANAGER: Manager,
    EntityType.REFEREE: Referee,
    EntityType.STABLE: Stable,
    EntityType.TITLE: Title,
}


def model_for(entity_type: EntityType):
    return MODEL_FOR_TYPE[EntityType(entity_type)]
