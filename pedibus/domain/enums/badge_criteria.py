from enum import Enum


class BadgeCriteria(str, Enum):
    STREAK = "streak"
    DISTANCE = "distance"
    CALORIES = "calories"
    WEATHER = "weather"
    POINTS = "points"
    LEADERBOARD = "leaderboard"
    PARTICIPATION = "participation"
    SPECIAL = "special"
