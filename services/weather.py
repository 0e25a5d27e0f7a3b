"""
Current weather at a point, from the open-meteo forecast API, scored for travel.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests
from dataclasses_json import dataclass_json

logger = logging.getLogger(__name__)

_DEFAULT_URL = "https://api.open-meteo.com/v1/forecast"

DEFAULT_ADVISORY = "Weather service unavailable"


@dataclass_json
@dataclass
class WeatherAnalysis:
    temperature_c: float
    wind_kph: float
    weather_code: int
    condition: str
    travel_advisory: str
    safety_score: float
    suitable_for_travel: bool
    is_default: bool = False

    def summary(self) -> str:
        """One-line description stored on the trip."""
        return (
            f"Temp: {self.temperature_c:.1f}°C, {self.condition}, "
            f"Wind: {self.wind_kph:.1f} km/h - {self.travel_advisory}"
        )


def default_weather() -> WeatherAnalysis:
    """Benign conditions used whenever the weather service cannot answer."""
    return WeatherAnalysis(
        temperature_c=20.0,
        wind_kph=10.0,
        weather_code=0,
        condition="Clear sky",
        travel_advisory=DEFAULT_ADVISORY,
        safety_score=85.0,
        suitable_for_travel=True,
        is_default=True,
    )


def condition_for(code: int) -> str:
    """WMO weather code -> coarse condition label."""
    if code == 0:
        return "Clear sky"
    if 1 <= code <= 3:
        return "Partly cloudy"
    if 4 <= code <= 48:
        return "Foggy"
    if 49 <= code <= 67:
        return "Rainy"
    if 68 <= code <= 77:
        return "Snowy"
    if 78 <= code <= 99:
        return "Thunderstorm"
    return "Unknown"


def advisory_for(temperature_c: float, wind_kph: float, code: int) -> str:
    if wind_kph > 50:
        return "High winds - avoid travel"
    if temperature_c < -10:
        return "Extreme cold - travel not recommended"
    if code > 80:
        return "Severe weather - postpone travel"
    return "Conditions good for travel"


def safety_score_for(temperature_c: float, wind_kph: float, code: int) -> float:
    score = 100.0
    if wind_kph > 30:
        score -= 30
    if temperature_c < -5 or temperature_c > 40:
        score -= 25
    if code > 60:
        score -= 20
    return max(0.0, score)


def analyse(temperature_c: float, wind_kph: float, code: int) -> WeatherAnalysis:
    score = safety_score_for(temperature_c, wind_kph, code)
    return WeatherAnalysis(
        temperature_c=temperature_c,
        wind_kph=wind_kph,
        weather_code=code,
        condition=condition_for(code),
        travel_advisory=advisory_for(temperature_c, wind_kph, code),
        safety_score=score,
        suitable_for_travel=score > 70,
    )


class WeatherClient:
    """open-meteo ``current_weather`` client. Never raises for upstream trouble."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url or os.getenv("WEATHER_URL", _DEFAULT_URL)
        self.timeout = timeout if timeout is not None else float(os.getenv("WEATHER_TIMEOUT", "5"))
        self.http = session or requests

    def get_weather_analysis(self, lat: float, lng: float) -> WeatherAnalysis:
        try:
            resp = self.http.get(
                self.base_url,
                params={
                    "latitude": lat,
                    "longitude": lng,
                    "current_weather": "true",
                    "temperature_unit": "celsius",
                    "timezone": "auto",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            current = resp.json()["current_weather"]
            return analyse(
                float(current["temperature"]),
                float(current["windspeed"]),
                int(current["weathercode"]),
            )
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("Weather lookup failed for (%s, %s), using default: %s", lat, lng, exc)
            return default_weather()
