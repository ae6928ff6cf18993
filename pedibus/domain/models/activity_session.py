from datetime import datetime
from typing import List, Optional

from pedibus.domain.enums.activity import ActivityMode, ActivityType, SessionStatus, StationVisitState
from pedibus.domain.enums.station_kind import StationKind
from pedibus.domain.enums.weather_type import WeatherType
from pedibus.domain.models.base import DomainModel


class ActivitySession(DomainModel):
    id: str
    route_id: str
    type: ActivityType
    mode: ActivityMode
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    started_by_id: Optional[str] = None
    finished_at: Optional[datetime] = None
    finished_by_id: Optional[str] = None
    is_closed: bool = False
    weather_temperature: Optional[int] = None
    weather_type: Optional[WeatherType] = None

    @property
    def is_started(self) -> bool:
        return self.started_at is not None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None


class StationVisit(DomainModel):
    activity_session_id: str
    station_id: str
    stop_number: int
    arrived_at: Optional[datetime] = None
    left_at: Optional[datetime] = None

    @property
    def state(self) -> StationVisitState:
        if self.left_at is not None:
            return StationVisitState.LEFT
        if self.arrived_at is not None:
            return StationVisitState.ARRIVED
        return StationVisitState.PENDING

    @property
    def is_open(self) -> bool:
        return self.arrived_at is not None and self.left_at is None


class InstructorAssignment(DomainModel):
    instructor_id: str
    activity_session_id: str
    assigned_at: Optional[datetime] = None


class Weather(DomainModel):
    temperature: int
    weather_type: WeatherType


class StationInfo(DomainModel):
    """What an instructor's device shows for a stop of a running session."""
    station_id: str
    name: str
    kind: StationKind
    latitude: float
    longitude: float
    stop_number: int
    scheduled_at: datetime
    distance_from_start_meters: int
    state: StationVisitState = StationVisitState.PENDING
    arrived_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    is_last_station: bool = False


class SessionStatusInfo(DomainModel):
    activity_session_id: str
    status: SessionStatus
    current_station: Optional[StationInfo] = None


class RosterEntry(DomainModel):
    person_id: str
    pick_up_station_id: Optional[str] = None
    drop_off_station_id: Optional[str] = None
    is_checked: bool = False


class StationRoster(DomainModel):
    """Children relevant to the current stop."""
    station: StationInfo
    children_in: List[RosterEntry]
    children_still_in: List[RosterEntry]
    children_out: List[RosterEntry]
