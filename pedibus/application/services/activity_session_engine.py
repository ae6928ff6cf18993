"""Station progression of a running activity session.

Every transition opens one transaction, locks the session row, re-reads the
whole session and only then checks its guards, so two instructors pressing the
same button see either the state before or the state after the other.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from pedibus.application.services.activity_stats_service import ActivityStatsService
from pedibus.application.services.badge_service import BadgeService
from pedibus.application.services.check_in_out_ledger import incomplete_attendees, pending_drop_offs
from pedibus.application.services.event_publisher import EventPublisher
from pedibus.application.services.session_progress import SessionSnapshot, SessionStateReader
from pedibus.application.utils.background import fire_and_forget
from pedibus.core.config import Settings
from pedibus.core.exceptions import ErrorCode, StateConflictError
from pedibus.core.logger import logger
from pedibus.domain.enums.activity import SessionStatus
from pedibus.domain.enums.people import AttendanceDirection, PersonRole
from pedibus.domain.models.activity_session import (
    ActivitySession,
    RosterEntry,
    SessionStatusInfo,
    StationInfo,
    StationRoster,
    StationVisit,
)
from pedibus.domain.models.identity import Caller
from pedibus.infrastructure.database.repositories.activity_session_repository import ActivitySessionRepository
from pedibus.infrastructure.external.api.weather_api_service import WeatherApiService


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivitySessionEngine:

    def __init__(
        self,
        settings: Settings,
        reader: SessionStateReader,
        session_repository: ActivitySessionRepository,
        weather_service: WeatherApiService,
        events: EventPublisher,
        stats_service: ActivityStatsService,
        badge_service: BadgeService,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.reader = reader
        self.sessions = session_repository
        self.weather = weather_service
        self.events = events
        self.stats = stats_service
        self.badges = badge_service
        self.clock = clock or _utcnow
        self.logger = logger.getChild(self.__class__.__name__)

    # ==== Transitions ====
    async def start(self, session_id: str, instructor_id: str) -> StationInfo:
        """Mark the session as started and return its first station.

        Guards run once before the weather lookup so a refused start never waits on
        the network, and once more under the row lock before anything is written.
        """
        async with self.sessions.session_factory() as db:
            snapshot = await self.reader.load(db, session_id)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._check_startable(snapshot.session)

        weather = await self.weather.get_weather_from_city(self.settings.weather_city)

        async with self.sessions.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._check_startable(snapshot.session)

            now = self.clock()
            values = {
                "started_at": now,
                "started_by_id": instructor_id,
                "weather_temperature": weather.temperature if weather else None,
                "weather_type": weather.weather_type if weather else None,
                "updated_at": now,
            }
            await self.sessions.update(db, session_id, **values)
            values.pop("updated_at")
            snapshot.session = snapshot.session.model_copy(update=values)
            first_station = snapshot.station_info(snapshot.stops[0])

        self.logger.info(f"🚀 Activity session {session_id} started by {instructor_id}")
        fire_and_forget(
            self.events.session_started(snapshot.session, first_station),
            name=f"session-started-{session_id}",
        )
        return first_station

    async def arrive(self, session_id: str, instructor_id: str) -> StationInfo:
        async with self.sessions.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._require_running(snapshot.session)

            if snapshot.open_visits:
                raise StateConflictError(
                    "The instructor is already at a station; advance before arriving again",
                    ErrorCode.ALREADY_OPEN,
                )
            stop = snapshot.current_stop
            if stop is None:
                raise StateConflictError("Every station of the route was already visited", ErrorCode.NO_STATIONS_LEFT)

            now = self.clock()
            visit = snapshot.visits.get(stop.stop_number)
            if visit is None:
                visit = await self.sessions.add_visit(db, session_id, stop.station_id, stop.stop_number, arrived_at=now)
            else:
                await self.sessions.update_visit(db, session_id, stop.station_id, arrived_at=now)
                visit = visit.model_copy(update={"arrived_at": now})
            snapshot.visits[stop.stop_number] = visit
            station = snapshot.station_info(stop)

        self.logger.info(f"📍 Session {session_id} arrived at stop {stop.stop_number}")
        fire_and_forget(self.events.arrived_at_station(session_id, station), name=f"arrived-{session_id}")
        return station

    async def advance(self, session_id: str, instructor_id: str) -> StationInfo:
        """Leave the current station and return the one now being travelled to."""
        async with self.sessions.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._require_running(snapshot.session)

            stop = snapshot.current_stop
            visit = snapshot.current_visit
            if stop is None:
                raise StateConflictError("There is no next station", ErrorCode.NO_NEXT_STATION)
            if visit is None or not visit.is_open:
                raise StateConflictError(
                    "The instructor has not arrived at the current station",
                    ErrorCode.NOT_YET_ARRIVED,
                )
            if pending_drop_offs(snapshot, stop.station_id):
                raise StateConflictError(
                    "There are still children to be dropped off at the current station",
                    ErrorCode.CHILDREN_PENDING,
                )
            next_stop = snapshot.next_stop(stop)
            if next_stop is None:
                raise StateConflictError("There is no next station", ErrorCode.NO_NEXT_STATION)

            now = self.clock()
            await self.sessions.update_visit(db, session_id, stop.station_id, left_at=now)
            snapshot.visits[stop.stop_number] = visit.model_copy(update={"left_at": now})
            station = snapshot.station_info(next_stop)

        self.logger.info(f"➡️ Session {session_id} left stop {stop.stop_number}")
        fire_and_forget(self.events.advanced_to_station(session_id, station), name=f"advanced-{session_id}")
        return station

    async def end(self, session_id: str, instructor_id: str) -> ActivitySession:
        async with self.sessions.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._require_running(snapshot.session)

            incomplete = incomplete_attendees(snapshot.attendances)
            if incomplete:
                raise StateConflictError(
                    f"Cannot finish activity: {len(incomplete)} attendee(s) lack a check-in/check-out pair",
                    ErrorCode.INCOMPLETE_CHECKOUTS,
                )
            if not self._at_final_station(snapshot):
                raise StateConflictError(
                    "Cannot finish activity: some stations are still in progress",
                    ErrorCode.STATIONS_IN_PROGRESS,
                )

            now = self.clock()
            final_stop = snapshot.current_stop
            await self.sessions.update_visit(db, session_id, final_stop.station_id, left_at=now)
            await self.sessions.update(db, session_id, finished_at=now, finished_by_id=instructor_id, updated_at=now)
            session = snapshot.session.model_copy(update={"finished_at": now, "finished_by_id": instructor_id})

        self.logger.info(f"🏁 Activity session {session_id} finished by {instructor_id}")
        fire_and_forget(self._after_session(session_id), name=f"post-session-{session_id}")
        fire_and_forget(self.events.session_ended(session), name=f"session-ended-{session_id}")
        return session

    async def _after_session(self, session_id: str):
        # Badges read the stats rows, so they wait for them
        try:
            await self.stats.record_session_stats(session_id)
        except Exception as e:
            self.logger.error(f"❌ Could not record stats for session {session_id}: {e}")
            return
        try:
            await self.badges.award_badges_after_activity(session_id)
        except Exception as e:
            self.logger.error(f"❌ Could not award badges for session {session_id}: {e}")

    # ==== Reads ====
    async def status(self, session_id: str, caller: Caller) -> SessionStatusInfo:
        async with self.sessions.session_factory() as db:
            snapshot = await self.reader.load(db, session_id)
            await self.reader.require_reader(db, snapshot, caller)

        session = snapshot.session
        stop = snapshot.current_stop
        current = snapshot.station_info(stop) if stop else None

        if session.is_finished:
            status = SessionStatus.ENDED
            current = None
        elif not session.is_started:
            status = SessionStatus.NOT_STARTED
        elif self._at_final_station(snapshot) and not incomplete_attendees(snapshot.attendances):
            status = SessionStatus.READY_TO_END
        elif snapshot.current_visit is not None and snapshot.current_visit.is_open:
            status = SessionStatus.IN_STATION
        else:
            status = SessionStatus.BETWEEN_STATIONS

        return SessionStatusInfo(activity_session_id=session_id, status=status, current_station=current)

    async def list_stations(self, session_id: str, caller: Caller) -> List[StationInfo]:
        async with self.sessions.session_factory() as db:
            snapshot = await self.reader.load(db, session_id)
            await self.reader.require_reader(db, snapshot, caller)
        return [snapshot.station_info(stop) for stop in snapshot.stops]

    async def roster(self, session_id: str, caller: Caller) -> StationRoster:
        """Children to pick up, still on board, and to drop off at the current station."""
        async with self.sessions.session_factory() as db:
            snapshot = await self.reader.load(db, session_id)
            await self.reader.require_reader(db, snapshot, caller)

        stop = snapshot.current_stop
        if stop is None:
            raise StateConflictError("Every station of the route was already visited", ErrorCode.NO_STATIONS_LEFT)
        station_id = stop.station_id

        children_in, children_still_in, children_out = [], [], []
        for registration in snapshot.registrations:
            if registration.role != PersonRole.CHILD:
                continue
            checked_in = snapshot.attendance_for(registration.person_id, AttendanceDirection.IN)
            checked_out = snapshot.attendance_for(registration.person_id, AttendanceDirection.OUT)

            def entry(is_checked: bool) -> RosterEntry:
                return RosterEntry(
                    person_id=registration.person_id,
                    pick_up_station_id=registration.pick_up_station_id,
                    drop_off_station_id=registration.drop_off_station_id,
                    is_checked=is_checked,
                )

            if registration.pick_up_station_id == station_id:
                children_in.append(entry(checked_in is not None))
            elif registration.drop_off_station_id == station_id:
                children_out.append(entry(checked_out is not None))
            elif checked_in is not None and checked_out is None:
                children_still_in.append(entry(True))

        return StationRoster(
            station=snapshot.station_info(stop),
            children_in=children_in,
            children_still_in=children_still_in,
            children_out=children_out,
        )

    # ==== Guards ====
    def _check_startable(self, session: ActivitySession):
        if session.is_finished:
            raise StateConflictError(f"Activity session {session.id} is already finished", ErrorCode.ALREADY_FINISHED)
        if session.is_started:
            raise StateConflictError(f"Activity session {session.id} already started", ErrorCode.ALREADY_STARTED)
        opens_at = session.scheduled_at - timedelta(minutes=self.settings.start_window_minutes)
        if self.clock() < opens_at:
            raise StateConflictError(
                f"Activity session {session.id} can only start after {opens_at.isoformat()}",
                ErrorCode.TOO_EARLY,
            )

    @staticmethod
    def _require_running(session: ActivitySession):
        if not session.is_started:
            raise StateConflictError(f"Activity session {session.id} has not started", ErrorCode.NOT_STARTED)
        if session.is_finished:
            raise StateConflictError(f"Activity session {session.id} is already finished", ErrorCode.ALREADY_FINISHED)

    @staticmethod
    def _at_final_station(snapshot: SessionSnapshot) -> bool:
        stop = snapshot.current_stop
        visit: Optional[StationVisit] = snapshot.current_visit
        return stop is not None and snapshot.is_last(stop) and visit is not None and visit.is_open
