from enum import Enum


class WeatherType(str, Enum):
    THUNDERSTORM = "thunderstorm"
    DRIZZLE = "drizzle"
    RAIN = "rain"
    SNOW = "snow"
    ATMOSPHERE = "atmosphere"
    CLEAR = "clear"
    CLOUDS = "clouds"

    @classmethod
    def from_condition_id(cls, condition_id: int) -> "WeatherType":
        """Map an OpenWeatherMap condition id to its group."""
        if 200 <= condition_id < 300:
            return cls.THUNDERSTORM
        if 300 <= condition_id < 400:
            return cls.DRIZZLE
        if 500 <= condition_id < 600:
            return cls.RAIN
        if 600 <= condition_id < 700:
            return cls.SNOW
        if condition_id == 800:
            return cls.CLEAR
        if 800 < condition_id < 900:
            return cls.CLOUDS
        return cls.ATMOSPHERE
