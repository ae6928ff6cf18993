from typing import List

from pedibus.application.utils.time_estimator import TimeEstimator
from pedibus.core.exceptions import NotFoundError
from pedibus.core.logger import logger
from pedibus.domain.enums.people import AttendanceDirection
from pedibus.domain.models.stats import ClientStat
from pedibus.infrastructure.database.repositories.activity_session_repository import ActivitySessionRepository
from pedibus.infrastructure.database.repositories.attendance_repository import AttendanceRepository
from pedibus.infrastructure.database.repositories.route_repository import RouteRepository
from pedibus.infrastructure.database.repositories.stats_repository import StatsRepository


class ActivityStatsService:
    """Per-person distance, calories and CO2 figures for a finished session."""

    def __init__(
        self,
        session_repository: ActivitySessionRepository,
        route_repository: RouteRepository,
        attendance_repository: AttendanceRepository,
        stats_repository: StatsRepository,
    ):
        self.sessions = session_repository
        self.routes = route_repository
        self.attendances = attendance_repository
        self.stats = stats_repository
        self.logger = logger.getChild(self.__class__.__name__)

    async def record_session_stats(self, session_id: str) -> List[ClientStat]:
        session = await self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Activity session {session_id} not found")

        existing = await self.stats.get_for_session(session_id)
        if existing:
            self.logger.warning(f"⚠️ Stats for session {session_id} already recorded")
            return existing

        stops = {s.station_id: s for s in await self.routes.get_stops(session.route_id)}
        visits = {v.station_id: v for v in await self.sessions.get_visits(session_id)}
        attendances = await self.attendances.list_for_session(session_id)

        rows = {}
        for attendance in attendances:
            rows.setdefault(attendance.person_id, {})[attendance.direction] = attendance

        stats = []
        for person_id, directions in rows.items():
            check_in = directions.get(AttendanceDirection.IN)
            check_out = directions.get(AttendanceDirection.OUT)
            if check_in is None or check_out is None:
                continue

            pick_up, drop_off = stops.get(check_in.station_id), stops.get(check_out.station_id)
            left, reached = visits.get(check_in.station_id), visits.get(check_out.station_id)
            if not (pick_up and drop_off and left and reached and left.left_at and reached.arrived_at):
                self.logger.warning(f"⚠️ Incomplete station data for {person_id} in session {session_id}")
                continue

            distance = abs(drop_off.distance_from_start_meters - pick_up.distance_from_start_meters)
            seconds = abs((reached.arrived_at - left.left_at).total_seconds())
            stats.append(ClientStat(
                person_id=person_id,
                role=check_in.role,
                activity_session_id=session_id,
                distance_meters=distance,
                calories_burned=TimeEstimator.calories_burned(distance, seconds, session.mode),
                co2_saved=TimeEstimator.co2_saved(distance),
                activity_date=session.scheduled_at,
            ))

        if stats:
            async with self.stats.transaction() as db:
                await self.stats.add_many(db, stats)

        self.logger.info(f"📊 Recorded {len(stats)} stat row(s) for session {session_id}")
        return stats
