"""Outbound notifications triggered by session transitions.

The engine only knows this interface; how an event reaches a phone (push,
socket, log line) is up to the implementation wired in at start-up.
"""

from pedibus.core.logger import logger
from pedibus.domain.models.activity_session import ActivitySession, StationInfo
from pedibus.domain.models.attendance import Attendance


class EventPublisher:
    """No-op publisher; subclasses override what they deliver."""

    async def session_started(self, session: ActivitySession, station: StationInfo):
        pass

    async def arrived_at_station(self, session_id: str, station: StationInfo):
        pass

    async def advanced_to_station(self, session_id: str, station: StationInfo):
        pass

    async def session_ended(self, session: ActivitySession):
        pass

    async def presence_changed(self, attendance: Attendance, removed: bool = False):
        pass


class LoggingEventPublisher(EventPublisher):

    def __init__(self):
        self.logger = logger.getChild(self.__class__.__name__)

    async def session_started(self, session: ActivitySession, station: StationInfo):
        self.logger.info(f"🚀 Session {session.id} started, heading to '{station.name}'")

    async def arrived_at_station(self, session_id: str, station: StationInfo):
        self.logger.info(f"📍 Session {session_id} arrived at stop {station.stop_number} '{station.name}'")

    async def advanced_to_station(self, session_id: str, station: StationInfo):
        self.logger.info(f"➡️ Session {session_id} left for stop {station.stop_number} '{station.name}'")

    async def session_ended(self, session: ActivitySession):
        self.logger.info(f"🏁 Session {session.id} finished at {session.finished_at}")

    async def presence_changed(self, attendance: Attendance, removed: bool = False):
        action = "undone" if removed else "registered"
        self.logger.info(
            f"👤 {attendance.role.value} {attendance.person_id} check-{attendance.direction.value} "
            f"{action} at station {attendance.station_id} (session {attendance.activity_session_id})"
        )
