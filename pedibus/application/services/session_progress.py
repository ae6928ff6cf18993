"""Read side of a running session.

The current station is always derived from the stop sequence and the visit rows:
it is the lowest stop number whose visit has not been left. Nothing stores a
pointer to it.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pedibus.core.exceptions import AuthorizationError, ErrorCode, NotFoundError
from pedibus.domain.enums.activity import StationVisitState
from pedibus.domain.enums.people import AttendanceDirection
from pedibus.domain.models.activity_session import ActivitySession, StationInfo, StationVisit
from pedibus.domain.models.attendance import Attendance, Registration
from pedibus.domain.models.identity import Caller
from pedibus.domain.models.route import RouteStop, Station
from pedibus.infrastructure.database.repositories.activity_session_repository import ActivitySessionRepository
from pedibus.infrastructure.database.repositories.attendance_repository import AttendanceRepository
from pedibus.infrastructure.database.repositories.route_repository import RouteRepository
from pedibus.infrastructure.database.repositories.station_repository import StationRepository


@dataclass
class SessionSnapshot:
    session: ActivitySession
    stops: List[RouteStop]
    stations: Dict[str, Station]
    visits: Dict[int, StationVisit] = field(default_factory=dict)
    attendances: List[Attendance] = field(default_factory=list)
    registrations: List[Registration] = field(default_factory=list)

    # ==== Stops ====
    @property
    def current_stop(self) -> Optional[RouteStop]:
        for stop in self.stops:
            visit = self.visits.get(stop.stop_number)
            if visit is None or visit.left_at is None:
                return stop
        return None

    @property
    def current_visit(self) -> Optional[StationVisit]:
        stop = self.current_stop
        return self.visits.get(stop.stop_number) if stop else None

    @property
    def open_visits(self) -> List[StationVisit]:
        return [v for v in self.visits.values() if v.is_open]

    @property
    def last_stop(self) -> Optional[RouteStop]:
        return self.stops[-1] if self.stops else None

    def is_last(self, stop: RouteStop) -> bool:
        return self.last_stop is not None and stop.stop_number == self.last_stop.stop_number

    def next_stop(self, stop: RouteStop) -> Optional[RouteStop]:
        for candidate in self.stops:
            if candidate.stop_number > stop.stop_number:
                return candidate
        return None

    def stop_for_station(self, station_id: str) -> Optional[RouteStop]:
        return next((s for s in self.stops if s.station_id == station_id), None)

    def visit_for_station(self, station_id: str) -> Optional[StationVisit]:
        stop = self.stop_for_station(station_id)
        return self.visits.get(stop.stop_number) if stop else None

    def station_info(self, stop: RouteStop) -> StationInfo:
        station = self.stations[stop.station_id]
        visit = self.visits.get(stop.stop_number)
        return StationInfo(
            station_id=station.id,
            name=station.name,
            kind=station.kind,
            latitude=station.latitude,
            longitude=station.longitude,
            stop_number=stop.stop_number,
            scheduled_at=self.session.scheduled_at + timedelta(minutes=stop.time_from_start_minutes),
            distance_from_start_meters=stop.distance_from_start_meters,
            state=visit.state if visit else StationVisitState.PENDING,
            arrived_at=visit.arrived_at if visit else None,
            left_at=visit.left_at if visit else None,
            is_last_station=self.is_last(stop),
        )

    # ==== Ledger ====
    def registration_for(self, person_id: str) -> Optional[Registration]:
        return next((r for r in self.registrations if r.person_id == person_id), None)

    def attendance_for(self, person_id: str, direction: AttendanceDirection) -> Optional[Attendance]:
        return next(
            (a for a in self.attendances if a.person_id == person_id and a.direction == direction),
            None,
        )


class SessionStateReader:
    """Loads a :class:`SessionSnapshot`, optionally locking the session row first."""

    def __init__(
        self,
        session_repository: ActivitySessionRepository,
        route_repository: RouteRepository,
        station_repository: StationRepository,
        attendance_repository: AttendanceRepository,
    ):
        self.sessions = session_repository
        self.routes = route_repository
        self.stations = station_repository
        self.attendances = attendance_repository

    async def load(self, db: AsyncSession, session_id: str, lock: bool = False) -> SessionSnapshot:
        if lock:
            session = await self.sessions.lock(db, session_id)
        else:
            session = await self.sessions.get(session_id, db)
        if session is None:
            raise NotFoundError(f"Activity session {session_id} not found")

        stops = await self.routes.get_stops(session.route_id, db)
        stations = await self.stations.get_by_ids([s.station_id for s in stops], db)
        visits = await self.sessions.get_visits(session_id, db)
        attendances = await self.attendances.list_for_session(session_id, db)
        registrations = await self.sessions.get_registrations(session_id, db)

        return SessionSnapshot(
            session=session,
            stops=stops,
            stations=stations,
            visits={v.stop_number: v for v in visits},
            attendances=attendances,
            registrations=registrations,
        )

    async def require_instructor(self, db: AsyncSession, session_id: str, instructor_id: str):
        if not await self.sessions.is_instructor_assigned(session_id, instructor_id, db):
            raise AuthorizationError(
                f"Instructor {instructor_id} is not assigned to activity session {session_id}",
                ErrorCode.NOT_ASSIGNED,
            )

    async def require_reader(self, db: AsyncSession, snapshot: SessionSnapshot, caller: Caller):
        """Admins, assigned instructors and the people registered to the session may read it."""
        if caller.is_admin:
            return
        if await self.sessions.is_instructor_assigned(snapshot.session.id, caller.person_id, db):
            return
        if any(caller.person_id in (r.person_id, r.guardian_id) for r in snapshot.registrations):
            return
        raise AuthorizationError(
            f"User {caller.person_id} cannot follow activity session {snapshot.session.id}",
            ErrorCode.FORBIDDEN_ROLE,
        )
