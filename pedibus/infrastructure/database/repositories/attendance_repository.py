from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pedibus.domain.enums.people import AttendanceDirection
from pedibus.domain.models.attendance import Attendance
from pedibus.domain.schemas.models import DBAttendance
from pedibus.infrastructure.database.repositories.base_repository import BaseRepository


class AttendanceRepository(BaseRepository):
    """Append/remove log of check-in and check-out rows."""

    async def list_for_session(self, session_id: str, db: Optional[AsyncSession] = None) -> List[Attendance]:
        async with self._use(db) as session:
            stmt = (
                select(DBAttendance)
                .where(DBAttendance.activity_session_id == session_id)
                .order_by(DBAttendance.registered_at, DBAttendance.id)
            )
            result = await session.execute(stmt)
            return [Attendance.model_validate(row) for row in result.scalars().all()]

    async def add(self, db: AsyncSession, attendance: Attendance) -> Attendance:
        row = DBAttendance(**attendance.model_dump())
        db.add(row)
        await db.flush()
        return Attendance.model_validate(row)

    async def remove(
        self,
        db: AsyncSession,
        session_id: str,
        person_id: str,
        direction: AttendanceDirection,
    ) -> int:
        stmt = (
            delete(DBAttendance)
            .where(DBAttendance.activity_session_id == session_id)
            .where(DBAttendance.person_id == person_id)
            .where(DBAttendance.direction == direction)
        )
        result = await db.execute(stmt)
        return result.rowcount or 0
