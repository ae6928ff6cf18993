from enum import Enum


class ActivityType(str, Enum):
    PEDIBUS = "pedibus"
    CICLO_EXPRESSO = "ciclo_expresso"


class ActivityMode(str, Enum):
    WALK = "walk"
    BIKE = "bike"

    @classmethod
    def for_type(cls, activity_type: ActivityType) -> "ActivityMode":
        return cls.WALK if activity_type == ActivityType.PEDIBUS else cls.BIKE


class SessionStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_STATION = "in-station"
    BETWEEN_STATIONS = "between-stations"
    READY_TO_END = "ready-to-end"
    ENDED = "ended"


class StationVisitState(str, Enum):
    PENDING = "pending"
    ARRIVED = "arrived"
    LEFT = "left"
