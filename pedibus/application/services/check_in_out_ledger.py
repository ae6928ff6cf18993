"""Check-in / check-out ledger and the attendance rules the engine relies on."""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pedibus.application.services.event_publisher import EventPublisher
from pedibus.application.services.session_progress import SessionSnapshot, SessionStateReader
from pedibus.application.utils.background import fire_and_forget
from pedibus.core.exceptions import ErrorCode, NotFoundError, StateConflictError
from pedibus.core.logger import logger
from pedibus.domain.enums.people import AttendanceDirection, PersonRole
from pedibus.domain.models.attendance import Attendance, Registration
from pedibus.infrastructure.database.repositories.attendance_repository import AttendanceRepository


def pending_drop_offs(snapshot: SessionSnapshot, station_id: str) -> List[Registration]:
    """Children on board who are due to alight at ``station_id`` and have not been checked out."""
    pending = []
    for registration in snapshot.registrations:
        if registration.role != PersonRole.CHILD or registration.drop_off_station_id != station_id:
            continue
        checked_in = snapshot.attendance_for(registration.person_id, AttendanceDirection.IN)
        checked_out = snapshot.attendance_for(registration.person_id, AttendanceDirection.OUT)
        if checked_in and not checked_out:
            pending.append(registration)
    return pending


def incomplete_attendees(attendances: List[Attendance]) -> List[str]:
    """People whose rows are not exactly one check-in plus one check-out."""
    rows: Dict[str, List[AttendanceDirection]] = {}
    for attendance in attendances:
        rows.setdefault(attendance.person_id, []).append(attendance.direction)

    return [
        person_id
        for person_id, directions in rows.items()
        if sorted(d.value for d in directions) != [AttendanceDirection.IN.value, AttendanceDirection.OUT.value]
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckInOutLedger:

    def __init__(
        self,
        reader: SessionStateReader,
        attendance_repository: AttendanceRepository,
        events: EventPublisher,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reader = reader
        self.attendances = attendance_repository
        self.events = events
        self.clock = clock or _utcnow
        self.logger = logger.getChild(self.__class__.__name__)

    async def check_in(self, session_id: str, person_id: str, instructor_id: str) -> Attendance:
        async with self.attendances.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._require_running(snapshot)
            registration = self._require_registration(snapshot, person_id)
            station_id = self._require_open_station(snapshot)

            if registration.role == PersonRole.CHILD and registration.pick_up_station_id != station_id:
                raise StateConflictError(
                    f"Child {person_id} is registered to be picked up at station "
                    f"{registration.pick_up_station_id}, not {station_id}",
                    ErrorCode.NOT_REGISTERED,
                )
            if snapshot.attendance_for(person_id, AttendanceDirection.IN):
                raise StateConflictError(f"{person_id} is already checked in", ErrorCode.ALREADY_DONE)

            attendance = await self.attendances.add(db, Attendance(
                person_id=person_id,
                role=registration.role,
                station_id=station_id,
                activity_session_id=session_id,
                direction=AttendanceDirection.IN,
                registered_at=self.clock(),
            ))

        self.logger.info(f"✅ {registration.role.value} {person_id} checked in at {station_id}")
        fire_and_forget(self.events.presence_changed(attendance), name=f"presence-{session_id}")
        return attendance

    async def check_out(self, session_id: str, person_id: str, instructor_id: str) -> Attendance:
        async with self.attendances.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._require_running(snapshot)
            registration = self._require_registration(snapshot, person_id)
            station_id = self._require_open_station(snapshot)

            if snapshot.attendance_for(person_id, AttendanceDirection.OUT):
                raise StateConflictError(f"{person_id} is already checked out", ErrorCode.ALREADY_DONE)
            if not snapshot.attendance_for(person_id, AttendanceDirection.IN):
                raise StateConflictError(
                    f"{person_id} cannot be checked out before being checked in",
                    ErrorCode.NOT_CHECKED_IN,
                )

            attendance = await self.attendances.add(db, Attendance(
                person_id=person_id,
                role=registration.role,
                station_id=station_id,
                activity_session_id=session_id,
                direction=AttendanceDirection.OUT,
                registered_at=self.clock(),
            ))

        self.logger.info(f"✅ {registration.role.value} {person_id} checked out at {station_id}")
        fire_and_forget(self.events.presence_changed(attendance), name=f"presence-{session_id}")
        return attendance

    async def undo_check_in(self, session_id: str, person_id: str, instructor_id: str) -> Attendance:
        return await self._undo(session_id, person_id, instructor_id, AttendanceDirection.IN)

    async def undo_check_out(self, session_id: str, person_id: str, instructor_id: str) -> Attendance:
        return await self._undo(session_id, person_id, instructor_id, AttendanceDirection.OUT)

    async def _undo(
        self, session_id: str, person_id: str, instructor_id: str, direction: AttendanceDirection
    ) -> Attendance:
        async with self.attendances.transaction() as db:
            snapshot = await self.reader.load(db, session_id, lock=True)
            await self.reader.require_instructor(db, session_id, instructor_id)
            self._require_running(snapshot)

            attendance = snapshot.attendance_for(person_id, direction)
            if attendance is None:
                raise NotFoundError(f"No check-{direction.value} recorded for {person_id} in session {session_id}")
            if direction == AttendanceDirection.IN and snapshot.attendance_for(person_id, AttendanceDirection.OUT):
                raise StateConflictError(
                    f"Undo the check-out of {person_id} before undoing the check-in",
                    ErrorCode.CHECKED_OUT,
                )

            # Corrections stop once the instructor has left the station of the row
            visit = snapshot.visit_for_station(attendance.station_id)
            if visit is not None and visit.left_at is not None:
                raise StateConflictError(
                    f"Station {attendance.station_id} was already left; the check-{direction.value} is final",
                    ErrorCode.STATION_ALREADY_LEFT,
                )

            await self.attendances.remove(db, session_id, person_id, direction)

        self.logger.info(f"↩️ check-{direction.value} of {person_id} undone in session {session_id}")
        fire_and_forget(self.events.presence_changed(attendance, removed=True), name=f"presence-{session_id}")
        return attendance

    @staticmethod
    def _require_running(snapshot: SessionSnapshot):
        session = snapshot.session
        if not session.is_started:
            raise StateConflictError(f"Activity session {session.id} has not started", ErrorCode.NOT_STARTED)
        if session.is_finished:
            raise StateConflictError(f"Activity session {session.id} is already finished", ErrorCode.ALREADY_FINISHED)

    @staticmethod
    def _require_registration(snapshot: SessionSnapshot, person_id: str) -> Registration:
        registration = snapshot.registration_for(person_id)
        if registration is None:
            raise StateConflictError(
                f"{person_id} is not registered for activity session {snapshot.session.id}",
                ErrorCode.NOT_REGISTERED,
            )
        return registration

    @staticmethod
    def _require_open_station(snapshot: SessionSnapshot) -> str:
        """Station id of the current stop, provided the instructor is standing at it."""
        stop = snapshot.current_stop
        visit = snapshot.current_visit
        if stop is None or visit is None or not visit.is_open:
            raise StateConflictError(
                "The instructor has not arrived at the current station",
                ErrorCode.INSTRUCTOR_NOT_PRESENT,
            )
        return stop.station_id
