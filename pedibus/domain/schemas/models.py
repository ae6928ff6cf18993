import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from pedibus.domain.enums.activity import ActivityMode, ActivityType
from pedibus.domain.enums.badge_criteria import BadgeCriteria
from pedibus.domain.enums.people import AttendanceDirection, PersonRole
from pedibus.domain.enums.station_kind import StationKind
from pedibus.domain.enums.weather_type import WeatherType
from pedibus.infrastructure.database.base import Base

# Relations are never declared here: repositories fetch related rows by id.


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        length=32,
    )


# ----------------------------
# ROUTE CATALOG
# ----------------------------
class DBStation(Base):
    __tablename__ = "stations"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    kind = Column(_enum(StationKind), nullable=False, default=StationKind.REGULAR)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Stations are shared between routes when coordinates match exactly
    __table_args__ = (
        UniqueConstraint("latitude", "longitude", name="uq_station_coordinates"),
    )

    def __repr__(self):
        return f"<DBStation(id={self.id}, name={self.name})>"


class DBRoute(Base):
    __tablename__ = "routes"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False, unique=True)
    activity_type = Column(_enum(ActivityType), nullable=False)
    total_distance_meters = Column(Integer, nullable=False, default=0)
    bounds_north = Column(Float, nullable=False)
    bounds_south = Column(Float, nullable=False)
    bounds_east = Column(Float, nullable=False)
    bounds_west = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<DBRoute(id={self.id}, name={self.name})>"


class DBRouteStation(Base):
    __tablename__ = "route_stations"

    route_id = Column(String(36), ForeignKey("routes.id", ondelete="CASCADE"), primary_key=True)
    station_id = Column(String(36), ForeignKey("stations.id"), primary_key=True)
    stop_number = Column(Integer, nullable=False)
    distance_from_start_meters = Column(Integer, nullable=False)
    distance_from_previous_meters = Column(Integer, nullable=False)
    time_from_start_minutes = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("route_id", "stop_number", name="uq_route_stop_number"),
    )

    def __repr__(self):
        return f"<DBRouteStation(route={self.route_id}, station={self.station_id}, stop={self.stop_number})>"


# ----------------------------
# ACTIVITY SESSIONS
# ----------------------------
class DBActivitySession(Base):
    __tablename__ = "activity_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    route_id = Column(String(36), ForeignKey("routes.id"), nullable=False, index=True)
    type = Column(_enum(ActivityType), nullable=False)
    mode = Column(_enum(ActivityMode), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_closed = Column(Boolean, nullable=False, default=False)

    started_at = Column(DateTime(timezone=True), nullable=True)
    started_by_id = Column(String, nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    finished_by_id = Column(String, nullable=True)

    weather_temperature = Column(Integer, nullable=True)
    weather_type = Column(_enum(WeatherType), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<DBActivitySession(id={self.id}, scheduled_at={self.scheduled_at})>"


class DBInstructorActivitySession(Base):
    __tablename__ = "instructor_activity_sessions"

    instructor_id = Column(String, primary_key=True)
    activity_session_id = Column(
        String(36), ForeignKey("activity_sessions.id", ondelete="CASCADE"), primary_key=True
    )
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())


class DBStationActivitySession(Base):
    """A session's visit to one stop; rows appear in stop order as the session progresses."""
    __tablename__ = "station_activity_sessions"

    activity_session_id = Column(
        String(36), ForeignKey("activity_sessions.id", ondelete="CASCADE"), primary_key=True
    )
    station_id = Column(String(36), ForeignKey("stations.id"), primary_key=True)
    stop_number = Column(Integer, nullable=False)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    left_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("activity_session_id", "stop_number", name="uq_session_stop_number"),
    )


class DBRegistration(Base):
    __tablename__ = "activity_registrations"

    person_id = Column(String, primary_key=True)
    activity_session_id = Column(
        String(36), ForeignKey("activity_sessions.id", ondelete="CASCADE"), primary_key=True
    )
    role = Column(_enum(PersonRole), nullable=False)
    pick_up_station_id = Column(String(36), ForeignKey("stations.id"), nullable=True)
    drop_off_station_id = Column(String(36), ForeignKey("stations.id"), nullable=True)
    guardian_id = Column(String, nullable=True)
    registered_at = Column(DateTime(timezone=True), server_default=func.now())


class DBAttendance(Base):
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(String, nullable=False)
    role = Column(_enum(PersonRole), nullable=False)
    station_id = Column(String(36), ForeignKey("stations.id"), nullable=False)
    activity_session_id = Column(
        String(36), ForeignKey("activity_sessions.id", ondelete="CASCADE"), nullable=False
    )
    direction = Column(_enum(AttendanceDirection), nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("person_id", "activity_session_id", "direction", name="uq_attendance_direction"),
        Index("ix_attendance_session_station", "activity_session_id", "station_id"),
    )


# ----------------------------
# STATS & BADGES
# ----------------------------
class DBClientStat(Base):
    __tablename__ = "client_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(String, nullable=False, index=True)
    role = Column(_enum(PersonRole), nullable=False)
    activity_session_id = Column(
        String(36), ForeignKey("activity_sessions.id", ondelete="CASCADE"), nullable=False
    )
    distance_meters = Column(Integer, nullable=False, default=0)
    calories_burned = Column(Integer, nullable=False, default=0)
    co2_saved = Column(Integer, nullable=False, default=0)
    activity_date = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("person_id", "activity_session_id", name="uq_client_stat_session"),
    )


class DBBadge(Base):
    __tablename__ = "badges"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    criteria = Column(_enum(BadgeCriteria), nullable=False)
    value_needed = Column(Integer, nullable=False)


class DBClientBadge(Base):
    __tablename__ = "client_badges"

    badge_id = Column(String(36), ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True)
    person_id = Column(String, primary_key=True)
    role = Column(_enum(PersonRole), nullable=False)
    awarded_at = Column(DateTime(timezone=True), server_default=func.now())
