from pedibus.domain.enums.activity import ActivityMode

WALKING_SPEED = 0.8          # m/s
BIKING_SPEED = 2.2           # m/s

DEFAULT_CHILD_WEIGHT_KG = 35
WALKING_MET = 2.5
BIKING_MET = 4.0

CO2_PER_KM_GRAMS = 120


class TimeEstimator:
    """Advisory estimates; transition guards never look at these numbers."""

    @staticmethod
    def estimate_minutes(distance_from_start_meters: float, mode: ActivityMode) -> int:
        if distance_from_start_meters <= 0:
            return 0
        speed = WALKING_SPEED if mode == ActivityMode.WALK else BIKING_SPEED
        return round(distance_from_start_meters / speed / 60)

    @staticmethod
    def calories_burned(distance_meters: float, time_seconds: float, mode: ActivityMode) -> int:
        if distance_meters <= 0 or time_seconds <= 0:
            return 0
        met = WALKING_MET if mode == ActivityMode.WALK else BIKING_MET
        return round(met * DEFAULT_CHILD_WEIGHT_KG * (time_seconds / 3600))

    @staticmethod
    def co2_saved(distance_meters: float) -> int:
        """Grams of CO2 not emitted by a car over the same distance."""
        if distance_meters <= 0:
            return 0
        return round(distance_meters / 1000 * CO2_PER_KM_GRAMS)
