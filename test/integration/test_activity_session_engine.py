import asyncio
from datetime import timedelta

import pytest

from pedibus.application.utils.background import drain_background_tasks
from pedibus.core.exceptions import AuthorizationError, ErrorCode, NotFoundError, StateConflictError
from pedibus.domain.enums.activity import SessionStatus, StationVisitState
from pedibus.domain.enums.people import UserRole
from pedibus.domain.enums.station_kind import StationKind
from pedibus.domain.enums.weather_type import WeatherType
from pedibus.domain.models.activity_session import Weather
from pedibus.domain.models.identity import Caller

INSTRUCTOR = "instructor-1"
ADMIN = Caller(person_id="admin-1", role=UserRole.ADMIN)


async def _expect_conflict(call, code):
    with pytest.raises(StateConflictError) as exc:
        await call
    assert exc.value.code == code


@pytest.mark.asyncio
async def test_start_returns_first_station(worker, activity_session, stations, events):
    station = await worker.engine.start(activity_session.id, INSTRUCTOR)

    assert station.station_id == stations[0]
    assert station.stop_number == 1
    assert station.state == StationVisitState.PENDING
    assert station.scheduled_at == activity_session.scheduled_at
    assert station.is_last_station is False

    session = await worker.scheduling_service.get_session(activity_session.id)
    assert session.is_started
    assert session.started_by_id == INSTRUCTOR
    assert session.weather_type is None

    await drain_background_tasks()
    assert events.names == ["session_started"]


@pytest.mark.asyncio
async def test_start_twice_fails_with_already_started(worker, activity_session):
    await worker.engine.start(activity_session.id, INSTRUCTOR)

    await _expect_conflict(worker.engine.start(activity_session.id, INSTRUCTOR), ErrorCode.ALREADY_STARTED)


@pytest.mark.asyncio
async def test_start_too_early(worker, activity_session, clock):
    clock.now = activity_session.scheduled_at - timedelta(minutes=31)

    await _expect_conflict(worker.engine.start(activity_session.id, INSTRUCTOR), ErrorCode.TOO_EARLY)

    clock.now = activity_session.scheduled_at - timedelta(minutes=30)
    await worker.engine.start(activity_session.id, INSTRUCTOR)


@pytest.mark.asyncio
async def test_start_keeps_the_weather_snapshot(worker, activity_session, monkeypatch):
    async def sunny(city):
        return Weather(temperature=18, weather_type=WeatherType.CLEAR)

    monkeypatch.setattr(worker.engine.weather, "get_weather_from_city", sunny)

    await worker.engine.start(activity_session.id, INSTRUCTOR)

    session = await worker.scheduling_service.get_session(activity_session.id)
    assert session.weather_temperature == 18
    assert session.weather_type == WeatherType.CLEAR


@pytest.mark.asyncio
async def test_unassigned_instructor_is_refused_before_any_state_check(worker, activity_session):
    with pytest.raises(AuthorizationError) as exc:
        await worker.engine.arrive(activity_session.id, "someone-else")
    assert exc.value.code == ErrorCode.NOT_ASSIGNED


@pytest.mark.asyncio
async def test_unknown_session(worker, activity_session):
    with pytest.raises(NotFoundError):
        await worker.engine.start("does-not-exist", INSTRUCTOR)


@pytest.mark.asyncio
async def test_transitions_before_start(worker, activity_session):
    await _expect_conflict(worker.engine.arrive(activity_session.id, INSTRUCTOR), ErrorCode.NOT_STARTED)
    await _expect_conflict(worker.engine.advance(activity_session.id, INSTRUCTOR), ErrorCode.NOT_STARTED)
    await _expect_conflict(worker.engine.end(activity_session.id, INSTRUCTOR), ErrorCode.NOT_STARTED)


@pytest.mark.asyncio
async def test_arrive_twice_is_an_idempotent_failure(worker, activity_session, stations, clock):
    await worker.engine.start(activity_session.id, INSTRUCTOR)
    clock.advance(5)
    arrived = await worker.engine.arrive(activity_session.id, INSTRUCTOR)
    before = await worker.engine.list_stations(activity_session.id, ADMIN)

    clock.advance(1)
    await _expect_conflict(worker.engine.arrive(activity_session.id, INSTRUCTOR), ErrorCode.ALREADY_OPEN)
    await _expect_conflict(worker.engine.arrive(activity_session.id, INSTRUCTOR), ErrorCode.ALREADY_OPEN)

    assert arrived.station_id == stations[0]
    assert arrived.state == StationVisitState.ARRIVED
    assert await worker.engine.list_stations(activity_session.id, ADMIN) == before


@pytest.mark.asyncio
async def test_advance_requires_arrival(worker, activity_session):
    await worker.engine.start(activity_session.id, INSTRUCTOR)

    await _expect_conflict(worker.engine.advance(activity_session.id, INSTRUCTOR), ErrorCode.NOT_YET_ARRIVED)


@pytest.mark.asyncio
async def test_concurrent_advances_are_serialized(worker, activity_session, stations):
    await worker.engine.start(activity_session.id, INSTRUCTOR)
    await worker.engine.arrive(activity_session.id, INSTRUCTOR)

    results = await asyncio.gather(
        worker.engine.advance(activity_session.id, INSTRUCTOR),
        worker.engine.advance(activity_session.id, INSTRUCTOR),
        return_exceptions=True,
    )

    advanced = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, StateConflictError)]
    assert len(advanced) == 1
    assert advanced[0].station_id == stations[1]
    assert len(refused) == 1
    assert refused[0].code == ErrorCode.NOT_YET_ARRIVED


@pytest.mark.asyncio
async def test_concurrent_arrivals_open_one_visit(worker, activity_session):
    await worker.engine.start(activity_session.id, INSTRUCTOR)

    results = await asyncio.gather(
        worker.engine.arrive(activity_session.id, INSTRUCTOR),
        worker.engine.arrive(activity_session.id, INSTRUCTOR),
        return_exceptions=True,
    )

    refused = [r for r in results if isinstance(r, StateConflictError)]
    assert len(refused) == 1
    assert refused[0].code == ErrorCode.ALREADY_OPEN


@pytest.mark.asyncio
async def test_walk_the_whole_route(worker, activity_session, stations, register_child, events, clock):
    """Child X boards at the first stop and leaves at the school."""
    session_id = activity_session.id
    await register_child(session_id, "child-x", stations[0], stations[2])

    await worker.engine.start(session_id, INSTRUCTOR)
    await worker.engine.arrive(session_id, INSTRUCTOR)
    await worker.ledger.check_in(session_id, "child-x", INSTRUCTOR)

    # Nothing is due at the first stop
    clock.advance(2)
    second = await worker.engine.advance(session_id, INSTRUCTOR)
    assert second.station_id == stations[1]

    await worker.engine.arrive(session_id, INSTRUCTOR)
    clock.advance(4)
    third = await worker.engine.advance(session_id, INSTRUCTOR)
    assert third.station_id == stations[2]
    assert third.is_last_station

    clock.advance(4)
    arrived = await worker.engine.arrive(session_id, INSTRUCTOR)
    assert arrived.is_last_station
    assert arrived.kind == StationKind.SCHOOL

    await _expect_conflict(worker.engine.end(session_id, INSTRUCTOR), ErrorCode.INCOMPLETE_CHECKOUTS)
    await _expect_conflict(worker.engine.advance(session_id, INSTRUCTOR), ErrorCode.CHILDREN_PENDING)

    await worker.ledger.check_out(session_id, "child-x", INSTRUCTOR)
    await _expect_conflict(worker.engine.advance(session_id, INSTRUCTOR), ErrorCode.NO_NEXT_STATION)

    finished = await worker.engine.end(session_id, INSTRUCTOR)
    assert finished.is_finished
    assert finished.finished_by_id == INSTRUCTOR

    visits = await worker.engine.list_stations(session_id, ADMIN)
    assert [v.state for v in visits] == [StationVisitState.LEFT] * 3

    await _expect_conflict(worker.engine.arrive(session_id, INSTRUCTOR), ErrorCode.ALREADY_FINISHED)
    await _expect_conflict(worker.engine.end(session_id, INSTRUCTOR), ErrorCode.ALREADY_FINISHED)
    await _expect_conflict(worker.engine.start(session_id, INSTRUCTOR), ErrorCode.ALREADY_FINISHED)

    await drain_background_tasks()
    assert events.names.count("arrived_at_station") == 3
    assert events.names.count("advanced_to_station") == 2
    assert "session_ended" in events.names


@pytest.mark.asyncio
async def test_children_pending_blocks_advance_until_checked_out(worker, activity_session, stations, register_child):
    session_id = activity_session.id
    await register_child(session_id, "child-a", stations[0], stations[1])
    await register_child(session_id, "child-b", stations[0], stations[1])

    await worker.engine.start(session_id, INSTRUCTOR)
    await worker.engine.arrive(session_id, INSTRUCTOR)
    await worker.ledger.check_in(session_id, "child-a", INSTRUCTOR)
    await worker.ledger.check_in(session_id, "child-b", INSTRUCTOR)
    await worker.engine.advance(session_id, INSTRUCTOR)
    await worker.engine.arrive(session_id, INSTRUCTOR)

    await worker.ledger.check_out(session_id, "child-a", INSTRUCTOR)
    await _expect_conflict(worker.engine.advance(session_id, INSTRUCTOR), ErrorCode.CHILDREN_PENDING)

    await worker.ledger.check_out(session_id, "child-b", INSTRUCTOR)
    station = await worker.engine.advance(session_id, INSTRUCTOR)
    assert station.station_id == stations[2]


@pytest.mark.asyncio
async def test_end_before_the_last_station(worker, activity_session):
    await worker.engine.start(activity_session.id, INSTRUCTOR)
    await worker.engine.arrive(activity_session.id, INSTRUCTOR)

    await _expect_conflict(worker.engine.end(activity_session.id, INSTRUCTOR), ErrorCode.STATIONS_IN_PROGRESS)


@pytest.mark.asyncio
async def test_status_follows_the_session(worker, activity_session):
    session_id = activity_session.id

    async def status():
        return (await worker.engine.status(session_id, ADMIN)).status

    assert await status() == SessionStatus.NOT_STARTED
    await worker.engine.start(session_id, INSTRUCTOR)
    assert await status() == SessionStatus.BETWEEN_STATIONS
    await worker.engine.arrive(session_id, INSTRUCTOR)
    assert await status() == SessionStatus.IN_STATION
    await worker.engine.advance(session_id, INSTRUCTOR)
    assert await status() == SessionStatus.BETWEEN_STATIONS
    await worker.engine.arrive(session_id, INSTRUCTOR)
    await worker.engine.advance(session_id, INSTRUCTOR)
    await worker.engine.arrive(session_id, INSTRUCTOR)
    assert await status() == SessionStatus.READY_TO_END
    await worker.engine.end(session_id, INSTRUCTOR)

    info = await worker.engine.status(session_id, ADMIN)
    assert info.status == SessionStatus.ENDED
    assert info.current_station is None


@pytest.mark.asyncio
async def test_stations_carry_scheduled_labels(worker, activity_session, route):
    stops = await worker.route_service.get_route_stops(route.id)

    listed = await worker.engine.list_stations(activity_session.id, ADMIN)

    assert [s.stop_number for s in listed] == [1, 2, 3]
    for info, stop in zip(listed, stops):
        assert info.scheduled_at == activity_session.scheduled_at + timedelta(minutes=stop.time_from_start_minutes)
        assert info.distance_from_start_meters == stop.distance_from_start_meters
    assert [s.is_last_station for s in listed] == [False, False, True]


@pytest.mark.asyncio
async def test_roster_of_the_current_station(worker, activity_session, stations, register_child):
    session_id = activity_session.id
    await register_child(session_id, "boards-here", stations[0], stations[2])
    await register_child(session_id, "boards-later", stations[1], stations[2])
    await register_child(session_id, "leaves-next", stations[0], stations[1])

    await worker.engine.start(session_id, INSTRUCTOR)
    await worker.engine.arrive(session_id, INSTRUCTOR)
    await worker.ledger.check_in(session_id, "boards-here", INSTRUCTOR)
    await worker.ledger.check_in(session_id, "leaves-next", INSTRUCTOR)
    await worker.engine.advance(session_id, INSTRUCTOR)
    await worker.engine.arrive(session_id, INSTRUCTOR)

    roster = await worker.engine.roster(session_id, ADMIN)

    assert roster.station.station_id == stations[1]
    assert [(c.person_id, c.is_checked) for c in roster.children_in] == [("boards-later", False)]
    assert [c.person_id for c in roster.children_still_in] == ["boards-here"]
    assert [(c.person_id, c.is_checked) for c in roster.children_out] == [("leaves-next", False)]


@pytest.mark.asyncio
async def test_who_may_follow_a_session(worker, activity_session, stations, register_child):
    await register_child(activity_session.id, "child-1", stations[0], stations[2], guardian_id="parent-1")

    guardian = Caller(person_id="parent-1", role=UserRole.PARENT)
    instructor = Caller(person_id=INSTRUCTOR, role=UserRole.INSTRUCTOR)
    stranger = Caller(person_id="parent-2", role=UserRole.PARENT)

    assert (await worker.engine.status(activity_session.id, guardian)).status == SessionStatus.NOT_STARTED
    assert (await worker.engine.status(activity_session.id, instructor)).status == SessionStatus.NOT_STARTED

    with pytest.raises(AuthorizationError) as exc:
        await worker.engine.status(activity_session.id, stranger)
    assert exc.value.code == ErrorCode.FORBIDDEN_ROLE
