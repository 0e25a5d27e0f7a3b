"""
Unit tests for services/weather.py

Tests cover:
- Condition bands at their boundaries
- Safety score penalties at their thresholds
- Advisory precedence
- WeatherClient with mocked HTTP (live and failure)
"""
import pytest

from conftest import json_session, offline_session
from services import weather as wx


class TestConditionFor:
    @pytest.mark.parametrize("code,expected", [
        (0, "Clear sky"),
        (1, "Partly cloudy"),
        (3, "Partly cloudy"),
        (4, "Foggy"),
        (48, "Foggy"),
        (49, "Rainy"),
        (67, "Rainy"),
        (68, "Snowy"),
        (77, "Snowy"),
        (78, "Thunderstorm"),
        (99, "Thunderstorm"),
        (100, "Unknown"),
        (-1, "Unknown"),
    ])
    def test_bands(self, code, expected):
        assert wx.condition_for(code) == expected


class TestSafetyScore:
    def test_calm_day(self):
        assert wx.safety_score_for(20, 10, 0) == 100

    def test_wind_threshold(self):
        assert wx.safety_score_for(20, 30, 0) == 100
        assert wx.safety_score_for(20, 31, 0) == 70

    def test_cold_threshold(self):
        assert wx.safety_score_for(-5, 10, 0) == 100
        assert wx.safety_score_for(-6, 10, 0) == 75

    def test_heat_threshold(self):
        assert wx.safety_score_for(40, 10, 0) == 100
        assert wx.safety_score_for(41, 10, 0) == 75

    def test_code_threshold(self):
        assert wx.safety_score_for(20, 10, 60) == 100
        assert wx.safety_score_for(20, 10, 61) == 80

    def test_all_penalties(self):
        assert wx.safety_score_for(-20, 80, 95) == 25


class TestAdvisory:
    def test_wind_first(self):
        assert wx.advisory_for(-20, 60, 95) == "High winds - avoid travel"

    def test_cold(self):
        assert wx.advisory_for(-11, 10, 0) == "Extreme cold - travel not recommended"

    def test_severe(self):
        assert wx.advisory_for(20, 10, 81) == "Severe weather - postpone travel"

    def test_good(self):
        assert wx.advisory_for(20, 10, 80) == "Conditions good for travel"


class TestAnalyse:
    @pytest.mark.parametrize("temp,wind,code", [
        (20, 10, 0), (20, 31, 0), (41, 31, 0), (-6, 10, 61), (25, 35, 95),
    ])
    def test_suitable_iff_score_above_70(self, temp, wind, code):
        analysis = wx.analyse(temp, wind, code)
        assert analysis.suitable_for_travel == (analysis.safety_score > 70)

    def test_exactly_70_is_not_suitable(self):
        analysis = wx.analyse(20, 31, 0)
        assert analysis.safety_score == 70
        assert analysis.suitable_for_travel is False


class TestDefaultWeather:
    def test_fixed_values(self):
        d = wx.default_weather()
        assert (d.temperature_c, d.wind_kph, d.weather_code) == (20.0, 10.0, 0)
        assert d.condition == "Clear sky"
        assert d.safety_score == 85.0
        assert d.suitable_for_travel is True
        assert d.is_default is True

    def test_summary_mentions_unavailable(self):
        assert "service unavailable" in wx.default_weather().summary()


class TestWeatherClient:
    def test_live(self):
        session = json_session({"current_weather": {"temperature": 31.5, "windspeed": 12.0, "weathercode": 2}})
        analysis = wx.WeatherClient(base_url="http://wx", timeout=2, session=session).get_weather_analysis(19.0, 72.8)
        assert analysis.condition == "Partly cloudy"
        assert analysis.temperature_c == 31.5
        assert analysis.is_default is False

        params = session.get.call_args.kwargs["params"]
        assert params["latitude"] == 19.0
        assert params["current_weather"] == "true"
        assert params["timezone"] == "auto"
        assert session.get.call_args.kwargs["timeout"] == 2

    def test_offline_returns_default(self):
        analysis = wx.WeatherClient(session=offline_session()).get_weather_analysis(0, 0)
        assert analysis == wx.default_weather()

    def test_missing_current_weather_returns_default(self):
        analysis = wx.WeatherClient(session=json_session({"error": True})).get_weather_analysis(0, 0)
        assert analysis.is_default is True

    def test_summary_format(self):
        analysis = wx.analyse(25, 12, 0)
        assert analysis.summary() == "Temp: 25.0°C, Clear sky, Wind: 12.0 km/h - Conditions good for travel"
