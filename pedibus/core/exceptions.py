"""Error taxonomy shared by every service.

Each error carries a stable ``code`` so callers can tell a person exactly which
rule blocked the request.
"""


class PedibusError(Exception):
    code = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(PedibusError):
    """Malformed or missing input, rejected before any lookup."""

    code = "VALIDATION_ERROR"


class NotFoundError(PedibusError):
    code = "NOT_FOUND"


class StateConflictError(PedibusError):
    """A transition guard was violated; ``code`` names the guard."""

    code = "STATE_CONFLICT"


class AuthorizationError(PedibusError):
    code = "NOT_AUTHORIZED"


class ErrorCode:
    INVALID_ROUTE = "INVALID_ROUTE"
    INSUFFICIENT_STOPS = "INSUFFICIENT_STOPS"
    ROUTE_EXISTS = "ROUTE_EXISTS"

    NOT_FOUND = "NOT_FOUND"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    ALREADY_STARTED = "ALREADY_STARTED"
    TOO_EARLY = "TOO_EARLY"
    NOT_STARTED = "NOT_STARTED"
    ALREADY_FINISHED = "ALREADY_FINISHED"
    ALREADY_OPEN = "ALREADY_OPEN"
    NO_STATIONS_LEFT = "NO_STATIONS_LEFT"
    CHILDREN_PENDING = "CHILDREN_PENDING"
    NO_NEXT_STATION = "NO_NEXT_STATION"
    NOT_YET_ARRIVED = "NOT_YET_ARRIVED"
    INCOMPLETE_CHECKOUTS = "INCOMPLETE_CHECKOUTS"
    STATIONS_IN_PROGRESS = "STATIONS_IN_PROGRESS"

    NOT_REGISTERED = "NOT_REGISTERED"
    ALREADY_DONE = "ALREADY_DONE"
    INSTRUCTOR_NOT_PRESENT = "INSTRUCTOR_NOT_PRESENT"
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    STATION_ALREADY_LEFT = "STATION_ALREADY_LEFT"

    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    REGISTRATIONS_CLOSED = "REGISTRATIONS_CLOSED"
    FORBIDDEN_ROLE = "FORBIDDEN_ROLE"
