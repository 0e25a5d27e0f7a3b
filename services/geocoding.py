"""
City name -> coordinates via the Nominatim search API.

Nominatim returns up to five candidates for a free-text query; the one whose
address best matches the requested city wins. When the service is down or
knows nothing about the name, a deterministic hash-derived point is returned
instead so trip planning can carry on. Callers can tell the two apart through
``Coordinates.resolved``.
"""

from __future__ import annotations

import hashlib
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from dataclasses_json import dataclass_json

logger = logging.getLogger(__name__)

_DEFAULT_URL = "https://nominatim.openstreetmap.org/search"
_DEFAULT_USER_AGENT = "travel-planner-backend/1.0"

# Most specific first.
_ADDRESS_COMPONENTS = ("city", "town", "village", "municipality", "county", "state")


@dataclass_json
@dataclass
class Coordinates:
    lat: float
    lng: float
    resolved: bool = True


@dataclass_json
@dataclass
class GeocodeDetails:
    city: str
    lat: float
    lng: float
    display_name: Optional[str] = None
    country: Optional[str] = None
    type: Optional[str] = None
    error: Optional[str] = None


def _geocoder_url() -> str:
    return os.getenv("GEOCODER_URL", _DEFAULT_URL)


def _geocoder_timeout() -> float:
    return float(os.getenv("GEOCODER_TIMEOUT", "5"))


def _user_agent() -> str:
    return os.getenv("GEOCODER_USER_AGENT", _DEFAULT_USER_AGENT)


# ---------------------------------------------------------------------------
# Best-match selection (pure)
# ---------------------------------------------------------------------------

def place_label(candidate: Dict[str, Any]) -> Optional[str]:
    """Most specific place name of a candidate, or its display_name."""
    address = candidate.get("address") or {}
    if isinstance(address, dict):
        for component in _ADDRESS_COMPONENTS:
            value = address.get(component)
            if isinstance(value, str) and value.strip():
                return value
    display_name = candidate.get("display_name")
    return display_name if isinstance(display_name, str) else None


def _similar_words(first: str, second: str) -> bool:
    for a in first.split():
        for b in second.split():
            if len(a) > 3 and len(b) > 3 and (a in b or b in a):
                return True
    return False


def matches_city(requested: str, label: str) -> bool:
    """Exact, then substring either way, then overlapping long words."""
    wanted = requested.strip().lower()
    actual = label.strip().lower()
    if not wanted or not actual:
        return False
    if actual == wanted:
        return True
    if wanted in actual or actual in wanted:
        return True
    return _similar_words(actual, wanted)


def best_match(city: str, candidates: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First candidate that matches the city, else the first candidate."""
    if not candidates:
        return None
    for candidate in candidates:
        label = place_label(candidate)
        if label and matches_city(city, label):
            return candidate
    return candidates[0]


def fallback_coordinates(city: str) -> Coordinates:
    """Deterministic stand-in point for a city the geocoder could not resolve.

    Latitude lands in [-65, 65] and longitude in [-180, 180]; the same name
    (ignoring case and surrounding blanks) always maps to the same point.
    """
    digest = hashlib.md5((city or "").strip().lower().encode("utf-8")).hexdigest()
    seed = int(digest[:8], 16)
    lat = (seed % 130) - 65.0 + (seed % 100) / 1000.0
    lng = (seed % 360) - 180.0 + ((seed // 100) % 100) / 1000.0
    return Coordinates(lat=lat, lng=lng, resolved=False)


def _candidate_point(candidate: Dict[str, Any]) -> Coordinates:
    lat, lng = float(candidate["lat"]), float(candidate["lon"])
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValueError(f"non-finite coordinates in geocoder result: {lat}, {lng}")
    return Coordinates(lat=lat, lng=lng)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class Geocoder:
    """Nominatim client. Never raises for upstream trouble."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url or _geocoder_url()
        self.timeout = timeout if timeout is not None else _geocoder_timeout()
        self.http = session or requests

    def _search(self, city: str, limit: int) -> List[Dict[str, Any]]:
        resp = self.http.get(
            self.base_url,
            params={"q": city, "format": "json", "limit": limit, "addressdetails": 1},
            headers={"User-Agent": _user_agent()},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"unexpected geocoder payload: {type(data).__name__}")
        return [item for item in data if isinstance(item, dict)]

    def get_coordinates(self, city: str) -> Coordinates:
        try:
            candidates = self._search(city, limit=5)
            match = best_match(city, candidates)
            if match is None:
                logger.warning("Geocoder returned no candidates for %r, using fallback", city)
                return fallback_coordinates(city)
            point = _candidate_point(match)
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("Geocoding failed for %r, using fallback: %s", city, exc)
            return fallback_coordinates(city)
        return point

    def get_coordinates_with_details(self, city: str) -> GeocodeDetails:
        """Top candidate with display name, country and type.

        Reports (0, 0) and an ``error`` message instead of a hash fallback:
        this lookup is informational, nothing is planned from it.
        """
        try:
            candidates = self._search(city, limit=1)
            if not candidates:
                return GeocodeDetails(city=city, lat=0.0, lng=0.0, error="Location not found")
            top = candidates[0]
            point = _candidate_point(top)
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("Geocoding details failed for %r: %s", city, exc)
            return GeocodeDetails(city=city, lat=0.0, lng=0.0, error="Geocoding service unavailable")
        address = top.get("address") if isinstance(top.get("address"), dict) else {}
        return GeocodeDetails(
            city=city,
            lat=point.lat,
            lng=point.lng,
            display_name=top.get("display_name"),
            country=address.get("country", "Unknown"),
            type=top.get("type"),
        )
