from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from pedibus.core.config import Settings
from pedibus.core.exceptions import AuthorizationError, ErrorCode, NotFoundError, StateConflictError, ValidationError
from pedibus.core.logger import logger
from pedibus.domain.enums.activity import ActivityMode, ActivityType
from pedibus.domain.enums.people import PersonRole, UserRole
from pedibus.domain.models.activity_session import ActivitySession, InstructorAssignment
from pedibus.domain.models.attendance import Registration
from pedibus.domain.models.identity import Caller
from pedibus.infrastructure.database.repositories.activity_session_repository import ActivitySessionRepository
from pedibus.infrastructure.database.repositories.route_repository import RouteRepository


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulingService:
    """Everything that happens to a session before it starts."""

    def __init__(
        self,
        settings: Settings,
        session_repository: ActivitySessionRepository,
        route_repository: RouteRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.sessions = session_repository
        self.routes = route_repository
        self.clock = clock or _utcnow
        self.logger = logger.getChild(self.__class__.__name__)

    async def schedule_session(
        self,
        route_id: str,
        scheduled_at: datetime,
        activity_type: Optional[ActivityType] = None,
    ) -> ActivitySession:
        route = await self.routes.get_by_id(route_id)
        if route is None:
            raise NotFoundError(f"Route {route_id} not found")

        activity_type = activity_type or route.activity_type
        if activity_type != route.activity_type:
            raise ValidationError(
                f"Route '{route.name}' is a {route.activity_type.value} route, not {activity_type.value}",
                ErrorCode.INVALID_ROUTE,
            )
        if scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

        async with self.sessions.transaction() as db:
            session = await self.sessions.add(
                db,
                route_id=route_id,
                activity_type=activity_type,
                mode=ActivityMode.for_type(activity_type),
                scheduled_at=scheduled_at,
            )

        self.logger.info(f"📅 Scheduled {activity_type.value} session {session.id} at {scheduled_at.isoformat()}")
        return session

    async def get_session(self, session_id: str) -> ActivitySession:
        session = await self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Activity session {session_id} not found")
        return session

    # ==== Instructors ====
    async def assign_instructors(self, session_id: str, instructor_ids: Iterable[str]) -> List[InstructorAssignment]:
        instructor_ids = list(dict.fromkeys(instructor_ids))
        async with self.sessions.transaction() as db:
            session = await self.sessions.lock(db, session_id)
            if session is None:
                raise NotFoundError(f"Activity session {session_id} not found")
            if session.is_started:
                raise StateConflictError(
                    f"Activity session {session_id} already started", ErrorCode.ALREADY_STARTED
                )
            for instructor_id in instructor_ids:
                if await self.sessions.is_instructor_assigned(session_id, instructor_id, db):
                    raise StateConflictError(
                        f"Instructor {instructor_id} is already assigned to session {session_id}",
                        ErrorCode.ALREADY_ASSIGNED,
                    )
            await self.sessions.add_assignments(db, session_id, instructor_ids)

        self.logger.info(f"👷 Assigned {len(instructor_ids)} instructor(s) to session {session_id}")
        return await self.sessions.get_assignments(session_id)

    async def unassign_instructor(self, session_id: str, instructor_id: str):
        async with self.sessions.transaction() as db:
            session = await self.sessions.lock(db, session_id)
            if session is None:
                raise NotFoundError(f"Activity session {session_id} not found")
            if session.is_started:
                raise StateConflictError(
                    f"Activity session {session_id} already started", ErrorCode.ALREADY_STARTED
                )
            if not await self.sessions.remove_assignment(db, session_id, instructor_id):
                raise NotFoundError(f"Instructor {instructor_id} is not assigned to session {session_id}")

    # ==== Registrations ====
    async def register(
        self,
        session_id: str,
        person_id: str,
        role: PersonRole,
        pick_up_station_id: Optional[str] = None,
        drop_off_station_id: Optional[str] = None,
        guardian_id: Optional[str] = None,
        caller: Optional[Caller] = None,
    ) -> Registration:
        """Register a child (with pickup and drop-off stations) or an accompanying parent.

        When a ``caller`` is given it must be an admin, the person themself, or a parent
        registering a child, in which case that parent becomes the guardian.
        """
        if caller is not None:
            guardian_id = self._guardian_for(caller, person_id, role)
        if role == PersonRole.CHILD and not (pick_up_station_id and drop_off_station_id):
            raise ValidationError("A child needs both a pick-up and a drop-off station", ErrorCode.NOT_REGISTERED)
        if role == PersonRole.PARENT:
            pick_up_station_id = drop_off_station_id = None

        async with self.sessions.transaction() as db:
            session = await self.sessions.lock(db, session_id)
            if session is None:
                raise NotFoundError(f"Activity session {session_id} not found")
            if session.is_closed or session.is_started:
                raise StateConflictError(
                    f"Registrations for session {session_id} are closed", ErrorCode.REGISTRATIONS_CLOSED
                )
            if role == PersonRole.CHILD:
                await self._check_stations(db, session, pick_up_station_id, drop_off_station_id)
            if await self.sessions.get_registration(session_id, person_id, db):
                raise StateConflictError(
                    f"{person_id} is already registered for session {session_id}", ErrorCode.ALREADY_REGISTERED
                )
            registration = await self.sessions.add_registration(
                db,
                session_id,
                person_id,
                role,
                pick_up_station_id=pick_up_station_id,
                drop_off_station_id=drop_off_station_id,
                guardian_id=guardian_id,
            )

        self.logger.info(f"📝 {role.value} {person_id} registered for session {session_id}")
        return registration

    async def unregister(self, session_id: str, person_id: str, caller: Optional[Caller] = None):
        async with self.sessions.transaction() as db:
            session = await self.sessions.lock(db, session_id)
            if session is None:
                raise NotFoundError(f"Activity session {session_id} not found")
            if session.is_closed or session.is_started:
                raise StateConflictError(
                    f"Registrations for session {session_id} are closed", ErrorCode.REGISTRATIONS_CLOSED
                )
            registration = await self.sessions.get_registration(session_id, person_id, db)
            if registration is None:
                raise NotFoundError(f"{person_id} is not registered for session {session_id}")
            if caller is not None and not (
                caller.is_admin or caller.person_id in (registration.person_id, registration.guardian_id)
            ):
                raise AuthorizationError(
                    f"User {caller.person_id} cannot unregister {person_id}", ErrorCode.FORBIDDEN_ROLE
                )
            await self.sessions.remove_registration(db, session_id, person_id)

    @staticmethod
    def _guardian_for(caller: Caller, person_id: str, role: PersonRole) -> Optional[str]:
        if caller.is_admin or caller.person_id == person_id:
            return None
        if caller.role == UserRole.PARENT and role == PersonRole.CHILD:
            return caller.person_id
        raise AuthorizationError(f"User {caller.person_id} cannot register {person_id}", ErrorCode.FORBIDDEN_ROLE)

    async def list_registrations(self, session_id: str) -> List[Registration]:
        await self.get_session(session_id)
        return await self.sessions.get_registrations(session_id)

    async def close_registrations(self, now: Optional[datetime] = None) -> int:
        """Close every open session scheduled within the registration window."""
        now = now or self.clock()
        limit = now + timedelta(hours=self.settings.registration_close_hours)
        async with self.sessions.transaction() as db:
            closed = await self.sessions.close_registrations(db, scheduled_before=limit)
        if closed:
            self.logger.info(f"🔒 Closed registrations for {closed} session(s)")
        return closed

    async def _check_stations(self, db, session: ActivitySession, pick_up_station_id: str, drop_off_station_id: str):
        numbers = {s.station_id: s.stop_number for s in await self.routes.get_stops(session.route_id, db)}
        for station_id in (pick_up_station_id, drop_off_station_id):
            if station_id not in numbers:
                raise ValidationError(
                    f"Station {station_id} is not part of the route of session {session.id}",
                    ErrorCode.NOT_REGISTERED,
                )
        if numbers[pick_up_station_id] >= numbers[drop_off_station_id]:
            raise ValidationError("The pick-up station must come before the drop-off station", ErrorCode.NOT_REGISTERED)
