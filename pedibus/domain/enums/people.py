from enum import Enum


class PersonRole(str, Enum):
    """Who a presence row belongs to."""
    CHILD = "child"
    PARENT = "parent"


class UserRole(str, Enum):
    """Role of the caller as resolved by the identity layer."""
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    PARENT = "parent"


class AttendanceDirection(str, Enum):
    IN = "in"
    OUT = "out"
