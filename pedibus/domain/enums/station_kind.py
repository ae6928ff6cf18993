from enum import Enum


class StationKind(str, Enum):
    REGULAR = "regular"
    SCHOOL = "school"
