import aiohttp
from typing import Optional

from pedibus.core.config import Settings
from pedibus.core.logger import logger
from pedibus.domain.enums.weather_type import WeatherType
from pedibus.domain.models.activity_session import Weather


class WeatherApiService:
    """Current weather from OpenWeatherMap. Best-effort: any failure yields None."""

    BASE_URL = "https://api.openweathermap.org/data/2.5/weather"

    def __init__(self, settings: Settings):
        self.api_key = settings.open_weather_api_key
        self.timeout = aiohttp.ClientTimeout(total=settings.weather_timeout_seconds)
        self.logger = logger.getChild(self.__class__.__name__)

    async def _request(self, params: dict) -> dict:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(self.BASE_URL, params=params) as resp:
                if resp.status == 401:
                    raise RuntimeError("Invalid API key")
                if resp.status == 404:
                    raise RuntimeError("City not found")
                resp.raise_for_status()
                return await resp.json()

    async def get_weather_from_city(self, city: str) -> Optional[Weather]:
        if not self.api_key:
            self.logger.warning("⚠️ No OpenWeatherMap API key configured, skipping weather snapshot")
            return None

        try:
            data = await self._request({"q": city, "appid": self.api_key, "units": "metric"})
            return self.parse_weather(data)
        except Exception as e:
            self.logger.error(f"❌ Weather API error for '{city}': {e}")
            return None

    @staticmethod
    def parse_weather(data: dict) -> Weather:
        return Weather(
            temperature=round(data["main"]["temp"]),
            weather_type=WeatherType.from_condition_id(int(data["weather"][0]["id"])),
        )
