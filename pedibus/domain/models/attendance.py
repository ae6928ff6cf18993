from datetime import datetime
from typing import Optional

from pedibus.domain.enums.people import AttendanceDirection, PersonRole
from pedibus.domain.models.base import DomainModel


class Attendance(DomainModel):
    """One check-in or check-out event at a station."""
    person_id: str
    role: PersonRole
    station_id: str
    activity_session_id: str
    direction: AttendanceDirection
    registered_at: datetime


class Registration(DomainModel):
    person_id: str
    role: PersonRole
    activity_session_id: str
    pick_up_station_id: Optional[str] = None
    drop_off_station_id: Optional[str] = None
    guardian_id: Optional[str] = None
    registered_at: Optional[datetime] = None
