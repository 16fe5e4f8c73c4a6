"""
Membership and Cascade Tests.

Join/leave stints between groups and members, and employ/activate
cascading to a group's current members.
"""
from datetime import datetime

import pytest

from ringside.events import ROSTER_CHANNEL
from ringside.exceptions import (
    InvalidRangeError, InvalidTransitionError, OverlappingPeriodError, UnsupportedKindError
)
from ringside.orm.roster import EntityType, PeriodKind
from ringside.services.event_log import EventLog
from ringside.services.lifecycle_service import LifecycleService
from ringside.services.membership_service import MembershipService
from ringside.services.period_store import PeriodStore
from ringside.services.roster_service import RosterService, as_ref
from ringside.services.status_resolver import CompositeStatus

DEC = datetime(2023, 12, 1)
JAN = datetime(2024, 1, 1)
FEB = datetime(2024, 2, 1)
MAR = datetime(2024, 3, 1)
APR = datetime(2024, 4, 1)


async def status_of(db, entity, as_of):
    return (await LifecycleService.status(db, entity, as_of)).status


# =============================================================================
# Join / leave
# =============================================================================

class TestMembership:

    @pytest.mark.asyncio
    async def test_join_and_list_members(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "Hart Foundation")
        bret = await make_entity(EntityType.WRESTLER, "Bret")
        jim = await make_entity(EntityType.WRESTLER, "Jim")

        membership = await MembershipService.join(db, team, bret, JAN)
        await MembershipService.join(db, team, jim, FEB)

        assert membership.joined_at == JAN
        assert membership.left_at is None
        assert await MembershipService.current_members(db, team, DEC) == []
        assert await MembershipService.current_members(db, team, JAN) == [as_ref(bret)]
        assert await MembershipService.current_members(db, team, MAR) == [as_ref(bret), as_ref(jim)]
        assert await MembershipService.current_groups(db, jim, MAR) == [as_ref(team)]

    @pytest.mark.asyncio
    async def test_leave_ends_stint(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, JAN)

        membership = await MembershipService.leave(db, team, w, MAR)
        assert membership.left_at == MAR

        assert await MembershipService.current_members(db, team, FEB) == [as_ref(w)]
        assert await MembershipService.current_members(db, team, MAR) == []

        with pytest.raises(OverlappingPeriodError):
            await MembershipService.join(db, team, w, FEB)

        await MembershipService.join(db, team, w, APR)
        history = await MembershipService.history(db, team)
        assert [(m.joined_at, m.left_at) for m in history] == [(JAN, MAR), (APR, None)]

    @pytest.mark.asyncio
    async def test_double_join_overlaps(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, JAN)

        with pytest.raises(OverlappingPeriodError):
            await MembershipService.join(db, team, w, FEB)
        assert len(await MembershipService.history(db, team)) == 1

    @pytest.mark.asyncio
    async def test_wrestler_in_one_tag_team_at_a_time(self, db, make_entity):
        first = await make_entity(EntityType.TAG_TEAM, "First")
        second = await make_entity(EntityType.TAG_TEAM, "Second")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, first, w, JAN)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await MembershipService.join(db, second, w, FEB)
        assert exc_info.value.reason == "already_member"

        await MembershipService.leave(db, first, w, FEB)
        await MembershipService.join(db, second, w, FEB)
        assert await MembershipService.current_groups(db, w, MAR) == [as_ref(second)]

    @pytest.mark.asyncio
    async def test_manager_manages_many(self, db, make_entity):
        manager = await make_entity(EntityType.MANAGER, "Jimmy")
        w1 = await make_entity(EntityType.WRESTLER, "W1")
        w2 = await make_entity(EntityType.WRESTLER, "W2")
        team = await make_entity(EntityType.TAG_TEAM, "TT")

        for group in (w1, w2, team):
            await MembershipService.join(db, group, manager, JAN)

        groups = await MembershipService.current_groups(db, manager, FEB)
        assert set(groups) == {as_ref(w1), as_ref(w2), as_ref(team)}
        assert await MembershipService.current_groups(db, manager, FEB, EntityType.TAG_TEAM) == [as_ref(team)]

    @pytest.mark.asyncio
    async def test_manager_in_one_stable_at_a_time(self, db, make_entity):
        manager = await make_entity(EntityType.MANAGER, "M")
        first = await make_entity(EntityType.STABLE, "S1")
        second = await make_entity(EntityType.STABLE, "S2")
        await MembershipService.join(db, first, manager, JAN)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await MembershipService.join(db, second, manager, FEB)
        assert exc_info.value.reason == "already_member"

    @pytest.mark.asyncio
    async def test_unsupported_pairs(self, db, make_entity):
        w = await make_entity(EntityType.WRESTLER, "W")
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        manager = await make_entity(EntityType.MANAGER, "M")
        title = await make_entity(EntityType.TITLE, "T")

        for group, member in ((w, team), (manager, w), (title, w), (team, team)):
            with pytest.raises(UnsupportedKindError) as exc_info:
                await MembershipService.join(db, group, member, JAN)
            assert exc_info.value.reason == "membership"

    @pytest.mark.asyncio
    async def test_leave_errors(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await MembershipService.leave(db, team, w, JAN)
        assert exc_info.value.reason == "not_member"

        await MembershipService.join(db, team, w, FEB)
        with pytest.raises(InvalidRangeError):
            await MembershipService.leave(db, team, w, JAN)
        assert (await MembershipService.open_membership(db, team, w)).left_at is None

    @pytest.mark.asyncio
    async def test_deleted_member_cannot_join(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await RosterService.soft_delete(db, w, JAN)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await MembershipService.join(db, team, w, FEB)
        assert exc_info.value.reason == "deleted"

    @pytest.mark.asyncio
    async def test_join_and_leave_logged_on_group(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, JAN)
        await MembershipService.leave(db, team, w, FEB)

        events = await EventLog.events_for(db, EntityType.TAG_TEAM, as_ref(team).entity_id)
        assert [e.event_type for e in events] == ["member_joined", "member_left"]
        assert events[0].payload["member_type"] == "wrestler"
        assert events[0].payload["member_id"] == as_ref(w).entity_id


# =============================================================================
# Employment cascade
# =============================================================================

class TestCascade:

    @pytest.mark.asyncio
    async def test_employ_without_cascade_leaves_members(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, DEC)

        result = await LifecycleService.employ(db, team, JAN)
        assert result.cascaded == []
        assert await status_of(db, w, FEB) == CompositeStatus.UNEMPLOYED

    @pytest.mark.asyncio
    async def test_employ_tag_team_employs_members(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w1 = await make_entity(EntityType.WRESTLER, "W1")
        w2 = await make_entity(EntityType.WRESTLER, "W2")
        manager = await make_entity(EntityType.MANAGER, "M")
        await MembershipService.join(db, team, manager, DEC)
        await MembershipService.join(db, team, w1, DEC)
        await MembershipService.join(db, team, w2, DEC)

        result = await LifecycleService.employ(db, team, JAN, cascade=True)

        # Wrestlers before managers
        assert result.cascaded == [as_ref(w1), as_ref(w2), as_ref(manager)]
        assert result.to_dict()["cascaded"][0] == {"entity_type": "wrestler", "entity_id": as_ref(w1).entity_id}
        for member in (w1, w2, manager):
            assert await status_of(db, member, JAN) == CompositeStatus.ACTIVE

        events = await EventLog.events_for(db, EntityType.WRESTLER, as_ref(w1).entity_id)
        assert events[-1].event_type == "entity_employed"
        assert events[-1].payload["cascaded_from"] == {
            "entity_type": "tag_team", "entity_id": as_ref(team).entity_id
        }

    @pytest.mark.asyncio
    async def test_activate_stable_cascades_through_tag_team(self, db, make_entity):
        stable = await make_entity(EntityType.STABLE, "S")
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w1 = await make_entity(EntityType.WRESTLER, "W1")
        w2 = await make_entity(EntityType.WRESTLER, "W2")
        solo = await make_entity(EntityType.WRESTLER, "Solo")
        await MembershipService.join(db, team, w1, DEC)
        await MembershipService.join(db, team, w2, DEC)
        await MembershipService.join(db, stable, team, DEC)
        await MembershipService.join(db, stable, solo, DEC)

        result = await LifecycleService.activate(db, stable, JAN, cascade=True)

        assert result.status == CompositeStatus.ACTIVE
        assert result.cascaded == [as_ref(solo), as_ref(team), as_ref(w1), as_ref(w2)]
        for member in (team, w1, w2, solo):
            assert await status_of(db, member, JAN) == CompositeStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_cascade_skips_members_already_placed(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        veteran = await make_entity(EntityType.WRESTLER, "Veteran")
        legend = await make_entity(EntityType.WRESTLER, "Legend")
        await LifecycleService.employ(db, veteran, DEC)
        await LifecycleService.employ(db, legend, DEC)
        await LifecycleService.retire(db, legend, datetime(2023, 12, 15))
        await MembershipService.join(db, team, veteran, DEC)
        await MembershipService.join(db, team, legend, DEC)

        result = await LifecycleService.employ(db, team, JAN, cascade=True)

        assert result.cascaded == []
        employment = await PeriodStore(db).periods_for(
            EntityType.WRESTLER, as_ref(veteran).entity_id, PeriodKind.EMPLOYMENT
        )
        assert [(p.started_at, p.ended_at) for p in employment] == [(DEC, None)]
        assert await status_of(db, legend, JAN) == CompositeStatus.RETIRED

    @pytest.mark.asyncio
    async def test_cascade_ignores_former_members(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, DEC)
        await MembershipService.leave(db, team, w, datetime(2023, 12, 20))

        result = await LifecycleService.employ(db, team, JAN, cascade=True)
        assert result.cascaded == []
        assert await status_of(db, w, JAN) == CompositeStatus.UNEMPLOYED

    @pytest.mark.asyncio
    async def test_cascade_failure_rolls_back_group(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        fresh = await make_entity(EntityType.WRESTLER, "Fresh")
        later = await make_entity(EntityType.WRESTLER, "Later")
        await MembershipService.join(db, team, fresh, DEC)
        await MembershipService.join(db, team, later, DEC)
        # Recorded history after the cascade instant blocks employing at FEB
        await LifecycleService.employ(db, later, MAR)
        await LifecycleService.release(db, later, APR)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await LifecycleService.employ(db, team, FEB, cascade=True)
        assert exc_info.value.reason == "released"

        assert await status_of(db, team, FEB) == CompositeStatus.UNEMPLOYED
        assert await status_of(db, fresh, FEB) == CompositeStatus.UNEMPLOYED
        assert await EventLog.events_for(db, EntityType.WRESTLER, as_ref(fresh).entity_id) == []

    @pytest.mark.asyncio
    async def test_cascade_only_applies_to_start_verbs(self, db, make_entity):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, DEC)
        await LifecycleService.employ(db, team, JAN, cascade=True)

        result = await LifecycleService.apply(db, team, "release", FEB, cascade=True)
        assert result.cascaded == []
        assert await status_of(db, w, FEB) == CompositeStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_cascade_events_published_group_first(self, db, make_entity, publisher):
        team = await make_entity(EntityType.TAG_TEAM, "TT")
        w = await make_entity(EntityType.WRESTLER, "W")
        await MembershipService.join(db, team, w, DEC)
        queue = await publisher.open_queue(ROSTER_CHANNEL)

        await LifecycleService.employ(db, team, JAN, cascade=True)

        published = [queue.get_nowait() for _ in range(queue.qsize())]
        assert [(m["entity_type"], m["event_type"]) for m in published] == [
            ("tag_team", "entity_employed"),
            ("wrestler", "entity_employed"),
        ]
