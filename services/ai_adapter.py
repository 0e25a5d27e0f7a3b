"""
AI response adapter: raw chat-model text -> typed records.

Models rarely return exactly what the prompt asked for. They wrap JSON in
markdown fences, add a sentence before the object, quote numbers, or answer
in prose. Everything here is pure: no I/O and no clock, so the same text
always produces the same record.

  1. extract_json()   fences stripped, first '{' to last '}', strict parse
  2. project()        per-key coercion against a Schema, defaults for misses
  3. analyse_*_text() keyword scan used when 1-2 give nothing viable
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

NUMBER = "number"
INT = "int"
STRING = "string"
LIST = "list"
RECORDS = "records"


@dataclass(frozen=True)
class Field:
    """One expected key: its kind, its default, and for RECORDS a sub-schema."""

    kind: str
    default: Any = None
    schema: Optional[Dict[str, "Field"]] = None


Schema = Dict[str, Field]

VALID_MODES = ("car", "train", "bus", "flight")

MODE_SCHEMA: Schema = {
    "recommendedMode": Field(STRING),
    "distanceEstimate": Field(NUMBER),
    "confidenceScore": Field(NUMBER),
    "reasoning": Field(STRING),
}

PLACE_SCHEMA: Schema = {
    "name": Field(STRING),
    "description": Field(STRING),
    "category": Field(STRING),
    "estimatedCost": Field(NUMBER),
    "recommendedDuration": Field(INT),
}

DAY_SCHEMA: Schema = {
    "day": Field(INT, 1),
    "places": Field(LIST, ()),
    "description": Field(STRING, "Daily itinerary"),
}

PLACE_RECOMMENDATION_SCHEMA: Schema = {
    "recommendedPlaces": Field(RECORDS, (), PLACE_SCHEMA),
    "dailyItinerary": Field(RECORDS, (), DAY_SCHEMA),
    "totalCostEstimate": Field(NUMBER),
    "reasoning": Field(STRING),
}

# Text-analysis defaults when the model answered in prose.
TEXT_DEFAULT_MODE = "car"
TEXT_DEFAULT_DISTANCE_KM = 250.0
TEXT_DEFAULT_CONFIDENCE = 0.8
TEXT_DEFAULT_REASONING = "Based on your travel preferences"

# famous_places column widths; proposed places are cut down to fit them.
MAX_PLACE_NAME_LENGTH = 255
MAX_PLACE_CATEGORY_LENGTH = 100
MAX_VISIT_HOURS = 24 * 7

PLACE_KEYWORDS = ("Beach", "Fort", "Temple", "Market", "Falls", "Church", "Museum")

_MODE_PATTERN = re.compile(
    r"\b(trains?|bus(?:es)?|flights?|planes?|cars?|driv(?:e|es|ing))\b", re.IGNORECASE
)
_DISTANCE_PATTERN = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(?:km|kilomet)", re.IGNORECASE)
_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

def unwrap_completion(text: str) -> str:
    """Return choices[0].message.content when text is a raw completion envelope.

    Some gateways hand back the whole OpenAI response body as the message
    text. Anything else is returned unchanged.
    """
    if not text or '"choices"' not in text:
        return text
    try:
        envelope = json.loads(text)
        content = envelope["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError):
        return text
    return content if isinstance(content, str) else text


def extract_json(text: Optional[str]) -> Dict[str, Any]:
    """Best-effort JSON object from model output; {} when nothing parses."""
    if not text or not text.strip():
        return {}
    cleaned = _FENCE_PATTERN.sub("", unwrap_completion(text)).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start < 0 or end <= start:
        return {}
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except ValueError:
        logger.warning("Model output is not valid JSON: %s", cleaned[:100])
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Typed projection
# ---------------------------------------------------------------------------

def _to_number(value: Any) -> Optional[float]:
    # bool is an int subclass; a model answering true is not a distance
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and "name" in value:
        return str(value["name"])
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def coerce(value: Any, expected: Field) -> Any:
    """Coerce one raw JSON value to the kind described by ``expected``."""
    if expected.kind == NUMBER:
        number = _to_number(value)
        return expected.default if number is None else number
    if expected.kind == INT:
        number = _to_number(value)
        return expected.default if number is None else int(number)
    if expected.kind == STRING:
        if value is None or isinstance(value, (dict, list)):
            return expected.default
        text = _to_text(value).strip()
        return text if text else expected.default
    if expected.kind == LIST:
        if not isinstance(value, list):
            return list(expected.default or ())
        return [_to_text(item) for item in value if item is not None]
    if expected.kind == RECORDS:
        if not isinstance(value, list):
            return list(expected.default or ())
        return [project(item, expected.schema or {}) for item in value if isinstance(item, dict)]
    raise ValueError(f"unknown field kind: {expected.kind}")


def project(data: Dict[str, Any], schema: Schema) -> Dict[str, Any]:
    """Project a parsed JSON object onto ``schema``; missing keys take defaults."""
    return {key: coerce(data.get(key), expected) for key, expected in schema.items()}


# ---------------------------------------------------------------------------
# Text-analysis fallback
# ---------------------------------------------------------------------------

def _normalise_mode(word: str) -> str:
    word = word.lower()
    if word.startswith(("flight", "plane")):
        return "flight"
    if word.startswith(("car", "driv")):
        return "car"
    if word.startswith("train"):
        return "train"
    return "bus"


def mode_from_text(text: str) -> Optional[str]:
    """First travel-mode word in the text, normalised; None when absent."""
    match = _MODE_PATTERN.search(text or "")
    return _normalise_mode(match.group(1)) if match else None


def distance_from_text(text: str) -> Optional[float]:
    """Whole kilometres of the first number directly preceding 'km'.

    Thousands separators are dropped and a fractional part is truncated,
    so "1,400 km" reads as 1400 and "450.5 km" as 450. None when absent.
    """
    match = _DISTANCE_PATTERN.search(text or "")
    if not match:
        return None
    return float(int(float(match.group(1).replace(",", ""))))


def place_keyword_from_text(text: str) -> Optional[str]:
    """First place-category keyword (in keyword order) present in the text."""
    lowered = (text or "").lower()
    for keyword in PLACE_KEYWORDS:
        if re.search(rf"\b{keyword.lower()}", lowered):
            return keyword
    return None


@dataclass
class ModeRecord:
    mode: str
    distance_km: float
    confidence: float
    reasoning: str
    source: str = "json"  # "json" or "text"


def analyse_mode_text(text: str) -> ModeRecord:
    """Keyword scan of a prose answer about the travel mode."""
    return ModeRecord(
        mode=mode_from_text(text) or TEXT_DEFAULT_MODE,
        distance_km=distance_from_text(text) or TEXT_DEFAULT_DISTANCE_KM,
        confidence=TEXT_DEFAULT_CONFIDENCE,
        reasoning=TEXT_DEFAULT_REASONING,
        source="text",
    )


def parse_mode_response(text: str) -> Optional[ModeRecord]:
    """Mode recommendation from raw model text: JSON first, prose second.

    A JSON answer is only used when it names one of the known modes; the
    remaining fields are clamped (confidence into [0, 1], negative
    distances replaced by the text-analysis default). Returns None when
    the text mentions neither a mode nor a distance.
    """
    record = project(extract_json(text), MODE_SCHEMA)
    mode = (record["recommendedMode"] or "").strip().lower()
    if mode not in VALID_MODES:
        mode = mode_from_text(mode) if mode else None
    if mode is None:
        prose = unwrap_completion(text)
        if mode_from_text(prose) is None and distance_from_text(prose) is None:
            return None
        return analyse_mode_text(prose)

    distance = record["distanceEstimate"]
    if distance is None or distance < 0:
        distance = distance_from_text(unwrap_completion(text)) or TEXT_DEFAULT_DISTANCE_KM
    confidence = record["confidenceScore"]
    if confidence is None:
        confidence = TEXT_DEFAULT_CONFIDENCE
    return ModeRecord(
        mode=mode,
        distance_km=distance,
        confidence=min(max(confidence, 0.0), 1.0),
        reasoning=record["reasoning"] or TEXT_DEFAULT_REASONING,
    )


@dataclass
class PlaceDraft:
    """A place as proposed by the model, before it is stored."""

    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    entry_fee: Optional[float] = None
    recommended_duration_hours: Optional[int] = None


@dataclass
class DayDraft:
    day: int
    places: List[str] = field(default_factory=list)
    description: str = "Daily itinerary"


@dataclass
class PlaceResponseDraft:
    places: List[PlaceDraft]
    days: List[DayDraft]
    total_cost: Optional[float]
    reasoning: Optional[str]
    source: str = "json"  # "json" or "text"


TEXT_PLACE_DESCRIPTION = "Extracted from AI recommendation"
TEXT_PLACE_REASONING = "AI-curated based on your preferences (text analysis)"


def _clip(text: Optional[str], limit: int) -> Optional[str]:
    if not text:
        return text
    return " ".join(text.split())[:limit].rstrip()


def _place_draft(item: Dict[str, Any]) -> PlaceDraft:
    """PlaceDraft from a projected place, with values fitted to storage.

    Over-long names and categories are truncated. A visit duration outside
    0..MAX_VISIT_HOURS and a negative cost are treated as absent.
    """
    hours = item["recommendedDuration"]
    if hours is not None and not 0 <= hours <= MAX_VISIT_HOURS:
        hours = None
    fee = item["estimatedCost"]
    if fee is not None and fee < 0:
        fee = None
    return PlaceDraft(
        name=_clip(item["name"], MAX_PLACE_NAME_LENGTH),
        description=item["description"],
        category=_clip(item["category"], MAX_PLACE_CATEGORY_LENGTH),
        entry_fee=fee,
        recommended_duration_hours=hours,
    )


def _dedupe_places(places: List[PlaceDraft]) -> List[PlaceDraft]:
    seen = set()
    unique = []
    for place in places:
        key = " ".join(place.name.split()).lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(place)
    return unique


def parse_place_response(text: str, city: str) -> Optional[PlaceResponseDraft]:
    """Place recommendation from raw model text.

    Returns None when neither the JSON nor the keyword scan yields a single
    place; the caller then falls back to stored top-rated places.
    """
    data = extract_json(text)
    if data:
        record = project(data, PLACE_RECOMMENDATION_SCHEMA)
        places = [
            _place_draft(item)
            for item in record["recommendedPlaces"]
            if item["name"] and item["name"].strip()
        ]
        days = [DayDraft(day=d["day"], places=d["places"], description=d["description"])
                for d in record["dailyItinerary"]]
        places = _dedupe_places(places)
        if places:
            return PlaceResponseDraft(
                places=places,
                days=days,
                total_cost=record["totalCostEstimate"],
                reasoning=record["reasoning"],
            )

    keyword = place_keyword_from_text(unwrap_completion(text))
    if keyword is None:
        return None
    return PlaceResponseDraft(
        places=[PlaceDraft(
            name=f"{keyword} in {city}",
            description=TEXT_PLACE_DESCRIPTION,
            category="General",
            entry_fee=0.0,
            recommended_duration_hours=2,
        )],
        days=[],
        total_cost=None,
        reasoning=TEXT_PLACE_REASONING,
        source="text",
    )
