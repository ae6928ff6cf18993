from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pedibus.domain.enums.activity import ActivityMode, ActivityType
from pedibus.domain.enums.people import PersonRole
from pedibus.domain.models.activity_session import ActivitySession, InstructorAssignment, StationVisit
from pedibus.domain.models.attendance import Registration
from pedibus.domain.schemas.models import (
    DBActivitySession,
    DBInstructorActivitySession,
    DBRegistration,
    DBStationActivitySession,
)
from pedibus.infrastructure.database.repositories.base_repository import BaseRepository


class ActivitySessionRepository(BaseRepository):

    # ==== Sessions ====
    async def get(self, session_id: str, db: Optional[AsyncSession] = None) -> Optional[ActivitySession]:
        async with self._use(db) as session:
            row = await session.get(DBActivitySession, session_id)
            return ActivitySession.model_validate(row) if row else None

    async def lock(self, db: AsyncSession, session_id: str) -> Optional[ActivitySession]:
        """Read the session row and hold it until the transaction ends.

        Every transition goes through here first, so two callers mutating the same
        session run one after the other.
        """
        stmt = (
            select(DBActivitySession)
            .where(DBActivitySession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        row = result.scalars().first()
        return ActivitySession.model_validate(row) if row else None

    async def add(
        self,
        db: AsyncSession,
        route_id: str,
        activity_type: ActivityType,
        mode: ActivityMode,
        scheduled_at: datetime,
    ) -> ActivitySession:
        row = DBActivitySession(
            route_id=route_id,
            type=activity_type,
            mode=mode,
            scheduled_at=scheduled_at,
            is_closed=False,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return ActivitySession.model_validate(row)

    async def update(self, db: AsyncSession, session_id: str, **values):
        stmt = (
            update(DBActivitySession)
            .where(DBActivitySession.id == session_id)
            .values(**values)
        )
        await db.execute(stmt)

    async def close_registrations(self, db: AsyncSession, scheduled_before: datetime) -> int:
        stmt = (
            update(DBActivitySession)
            .where(DBActivitySession.scheduled_at < scheduled_before)
            .where(DBActivitySession.is_closed.is_(False))
            .values(is_closed=True)
        )
        result = await db.execute(stmt)
        return result.rowcount or 0

    # ==== Instructors ====
    async def is_instructor_assigned(
        self, session_id: str, instructor_id: str, db: Optional[AsyncSession] = None
    ) -> bool:
        async with self._use(db) as session:
            row = await session.get(DBInstructorActivitySession, (instructor_id, session_id))
            return row is not None

    async def get_assignments(self, session_id: str) -> List[InstructorAssignment]:
        async with self.session_factory() as session:
            stmt = (
                select(DBInstructorActivitySession)
                .where(DBInstructorActivitySession.activity_session_id == session_id)
                .order_by(DBInstructorActivitySession.assigned_at)
            )
            result = await session.execute(stmt)
            return [InstructorAssignment.model_validate(row) for row in result.scalars().all()]

    async def add_assignments(self, db: AsyncSession, session_id: str, instructor_ids: Iterable[str]):
        db.add_all([
            DBInstructorActivitySession(instructor_id=instructor_id, activity_session_id=session_id)
            for instructor_id in instructor_ids
        ])
        await db.flush()

    async def remove_assignment(self, db: AsyncSession, session_id: str, instructor_id: str) -> bool:
        stmt = (
            delete(DBInstructorActivitySession)
            .where(DBInstructorActivitySession.activity_session_id == session_id)
            .where(DBInstructorActivitySession.instructor_id == instructor_id)
        )
        result = await db.execute(stmt)
        return (result.rowcount or 0) > 0

    # ==== Station visits ====
    async def get_visits(self, session_id: str, db: Optional[AsyncSession] = None) -> List[StationVisit]:
        async with self._use(db) as session:
            stmt = (
                select(DBStationActivitySession)
                .where(DBStationActivitySession.activity_session_id == session_id)
                .order_by(DBStationActivitySession.stop_number)
                .execution_options(populate_existing=True)
            )
            result = await session.execute(stmt)
            return [StationVisit.model_validate(row) for row in result.scalars().all()]

    async def add_visit(
        self,
        db: AsyncSession,
        session_id: str,
        station_id: str,
        stop_number: int,
        arrived_at: Optional[datetime] = None,
    ) -> StationVisit:
        row = DBStationActivitySession(
            activity_session_id=session_id,
            station_id=station_id,
            stop_number=stop_number,
            arrived_at=arrived_at,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return StationVisit.model_validate(row)

    async def update_visit(self, db: AsyncSession, session_id: str, station_id: str, **values):
        stmt = (
            update(DBStationActivitySession)
            .where(DBStationActivitySession.activity_session_id == session_id)
            .where(DBStationActivitySession.station_id == station_id)
            .values(**values)
        )
        await db.execute(stmt)

    # ==== Registrations ====
    async def get_registrations(self, session_id: str, db: Optional[AsyncSession] = None) -> List[Registration]:
        async with self._use(db) as session:
            stmt = (
                select(DBRegistration)
                .where(DBRegistration.activity_session_id == session_id)
                .order_by(DBRegistration.registered_at, DBRegistration.person_id)
            )
            result = await session.execute(stmt)
            return [Registration.model_validate(row) for row in result.scalars().all()]

    async def get_registration(
        self, session_id: str, person_id: str, db: Optional[AsyncSession] = None
    ) -> Optional[Registration]:
        async with self._use(db) as session:
            row = await session.get(DBRegistration, (person_id, session_id))
            return Registration.model_validate(row) if row else None

    async def add_registration(
        self,
        db: AsyncSession,
        session_id: str,
        person_id: str,
        role: PersonRole,
        pick_up_station_id: Optional[str] = None,
        drop_off_station_id: Optional[str] = None,
        guardian_id: Optional[str] = None,
    ) -> Registration:
        row = DBRegistration(
            person_id=person_id,
            activity_session_id=session_id,
            role=role,
            pick_up_station_id=pick_up_station_id,
            drop_off_station_id=drop_off_station_id,
            guardian_id=guardian_id,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return Registration.model_validate(row)

    async def remove_registration(self, db: AsyncSession, session_id: str, person_id: str) -> bool:
        stmt = (
            delete(DBRegistration)
            .where(DBRegistration.activity_session_id == session_id)
            .where(DBRegistration.person_id == person_id)
        )
        result = await db.execute(stmt)
        return (result.rowcount or 0) > 0
