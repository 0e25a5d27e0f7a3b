"""
Unit tests for services/ai_adapter.py

Tests cover:
- JSON extraction from fenced, prefixed, and enveloped model output
- Typed projection and coercion rules
- Text-analysis fallback for prose answers
- parse_mode_response() / parse_place_response()
"""
import json

import pytest

from database import FamousPlace
from services import ai_adapter as ad


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------

class TestExtractJson:
    def test_plain_object(self):
        assert ad.extract_json('{"a": 1}') == {"a": 1}

    def test_strips_json_fence(self):
        assert ad.extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_strips_uppercase_fence(self):
        assert ad.extract_json('```JSON\n{"a": 1}\n```') == {"a": 1}

    def test_trims_text_around_object(self):
        text = 'Sure! Here is the plan: {"a": {"b": 2}} Hope that helps.'
        assert ad.extract_json(text) == {"a": {"b": 2}}

    def test_invalid_json_yields_empty(self):
        assert ad.extract_json('{"a": 1,,}') == {}

    def test_no_braces_yields_empty(self):
        assert ad.extract_json("take the train") == {}

    def test_empty_and_none(self):
        assert ad.extract_json("") == {}
        assert ad.extract_json(None) == {}

    def test_object_inside_array_is_extracted(self):
        assert ad.extract_json('[{"a": 1}]') == {"a": 1}

    def test_unwraps_completion_envelope(self):
        inner = '```json\n{"recommendedMode": "bus"}\n```'
        envelope = json.dumps({"choices": [{"message": {"role": "assistant", "content": inner}}]})
        assert ad.extract_json(envelope) == {"recommendedMode": "bus"}

    def test_deterministic(self):
        text = 'noise {"x": [1, 2, {"y": "z"}]} noise'
        assert ad.extract_json(text) == ad.extract_json(text)


# ---------------------------------------------------------------------------
# coerce / project
# ---------------------------------------------------------------------------

class TestCoerce:
    def test_number_from_int_and_float(self):
        field_kind = ad.Field(ad.NUMBER)
        assert ad.coerce(450, field_kind) == 450.0
        assert ad.coerce(0.85, field_kind) == 0.85

    def test_number_from_numeric_string(self):
        assert ad.coerce("450", ad.Field(ad.NUMBER)) == 450.0
        assert ad.coerce(" 1,200.5 ", ad.Field(ad.NUMBER)) == 1200.5

    def test_number_rejects_words_and_bools(self):
        field_kind = ad.Field(ad.NUMBER, default=-1.0)
        assert ad.coerce("far", field_kind) == -1.0
        assert ad.coerce(True, field_kind) == -1.0
        assert ad.coerce(None, field_kind) == -1.0

    def test_number_rejects_non_finite(self):
        assert ad.coerce("nan", ad.Field(ad.NUMBER)) is None
        assert ad.coerce("inf", ad.Field(ad.NUMBER)) is None

    def test_int_truncates(self):
        assert ad.coerce(2.9, ad.Field(ad.INT)) == 2
        assert ad.coerce("3.7", ad.Field(ad.INT)) == 3

    def test_string_from_number(self):
        assert ad.coerce(12, ad.Field(ad.STRING)) == "12"

    def test_blank_string_takes_default(self):
        assert ad.coerce("   ", ad.Field(ad.STRING, "dflt")) == "dflt"

    def test_list_elements_become_strings(self):
        assert ad.coerce(["A", 2, {"name": "C"}, None], ad.Field(ad.LIST)) == ["A", "2", "C"]

    def test_list_default_when_not_a_list(self):
        assert ad.coerce("A, B", ad.Field(ad.LIST)) == []

    def test_records_skip_non_objects(self):
        field_kind = ad.Field(ad.RECORDS, (), {"n": ad.Field(ad.INT, 0)})
        assert ad.coerce([{"n": "4"}, "junk", {}], field_kind) == [{"n": 4}, {"n": 0}]


class TestProject:
    def test_missing_keys_take_defaults(self):
        record = ad.project({}, ad.DAY_SCHEMA)
        assert record == {"day": 1, "places": [], "description": "Daily itinerary"}

    def test_extra_keys_dropped(self):
        record = ad.project({"recommendedMode": "bus", "extra": 1}, ad.MODE_SCHEMA)
        assert "extra" not in record
        assert record["recommendedMode"] == "bus"


# ---------------------------------------------------------------------------
# Text analysis
# ---------------------------------------------------------------------------

class TestTextAnalysis:
    def test_earliest_mode_mention_wins(self):
        assert ad.mode_from_text("Take a bus, or a train if you can") == "bus"

    def test_plane_and_drive_are_normalised(self):
        assert ad.mode_from_text("Board a plane") == "flight"
        assert ad.mode_from_text("Driving is easiest") == "car"

    def test_word_boundaries(self):
        assert ad.mode_from_text("a scary trainee story") is None

    def test_distance_first_integer_before_km(self):
        assert ad.distance_from_text("about 450 km, maybe 500km") == 450.0
        assert ad.distance_from_text("far away") is None

    def test_distance_thousands_separator(self):
        assert ad.distance_from_text("roughly 1,400 km by road") == 1400.0
        assert ad.distance_from_text("12,345 kilometres") == 12345.0

    def test_distance_fraction_truncated(self):
        assert ad.distance_from_text("about 450.5 km") == 450.0
        assert ad.distance_from_text("450.9km") == 450.0

    def test_place_keyword_in_keyword_order(self):
        assert ad.place_keyword_from_text("visit the museum and the beaches") == "Beach"
        assert ad.place_keyword_from_text("nothing to see") is None


# ---------------------------------------------------------------------------
# parse_mode_response
# ---------------------------------------------------------------------------

class TestParseModeResponse:
    def test_fenced_json_with_string_distance(self):
        text = '```json {"recommendedMode":"train","distanceEstimate":"450","confidenceScore":0.9} ```'
        record = ad.parse_mode_response(text)
        assert record.mode == "train"
        assert record.distance_km == 450.0
        assert record.confidence == 0.9
        assert record.source == "json"

    def test_prose_falls_back_to_text_analysis(self):
        record = ad.parse_mode_response("I think you should take the train, about 450 km")
        assert record.mode == "train"
        assert record.distance_km == 450.0
        assert record.confidence == ad.TEXT_DEFAULT_CONFIDENCE
        assert record.source == "text"

    def test_prose_with_grouped_distance(self):
        record = ad.parse_mode_response("Take the train, roughly 1,400 km from Delhi to Mumbai")
        assert record.mode == "train"
        assert record.distance_km == 1400.0

    def test_prose_with_only_distance_defaults_mode(self):
        record = ad.parse_mode_response("It is roughly 120 km")
        assert record.mode == ad.TEXT_DEFAULT_MODE
        assert record.distance_km == 120.0

    def test_unreadable_returns_none(self):
        assert ad.parse_mode_response("I cannot help with that.") is None

    def test_unknown_mode_in_json_uses_prose(self):
        record = ad.parse_mode_response('{"recommendedMode": "boat"} or maybe a bus, 80 km')
        assert record.mode == "bus"
        assert record.source == "text"

    def test_mode_is_normalised(self):
        assert ad.parse_mode_response('{"recommendedMode": "Plane"}').mode == "flight"

    def test_confidence_clamped(self):
        record = ad.parse_mode_response('{"recommendedMode": "car", "confidenceScore": 3}')
        assert record.confidence == 1.0
        record = ad.parse_mode_response('{"recommendedMode": "car", "confidenceScore": -0.2}')
        assert record.confidence == 0.0

    def test_negative_distance_replaced(self):
        record = ad.parse_mode_response('{"recommendedMode": "car", "distanceEstimate": -5}')
        assert record.distance_km == ad.TEXT_DEFAULT_DISTANCE_KM

    def test_missing_fields_take_defaults(self):
        record = ad.parse_mode_response('{"recommendedMode": "bus"}')
        assert record.distance_km == ad.TEXT_DEFAULT_DISTANCE_KM
        assert record.confidence == ad.TEXT_DEFAULT_CONFIDENCE
        assert record.reasoning == ad.TEXT_DEFAULT_REASONING

    @pytest.mark.parametrize("text", [
        '{"recommendedMode": "flight", "distanceEstimate": 1400}',
        "no idea",
        "train 300 km",
    ])
    def test_deterministic(self, text):
        assert ad.parse_mode_response(text) == ad.parse_mode_response(text)


# ---------------------------------------------------------------------------
# parse_place_response
# ---------------------------------------------------------------------------

class TestParsePlaceResponse:
    def test_json_places_and_days(self):
        from conftest import PLACES_JSON
        draft = ad.parse_place_response(PLACES_JSON, "Mumbai")
        assert [p.name for p in draft.places] == [
            "Gateway of India", "Marine Drive", "Chhatrapati Shivaji Maharaj Vastu Sangrahalaya",
        ]
        assert draft.places[2].entry_fee == 150.0
        assert draft.places[2].recommended_duration_hours == 3
        assert [d.day for d in draft.days] == [1, 2]
        assert draft.total_cost == 2500.0
        assert draft.source == "json"

    def test_duplicate_names_deduplicated(self):
        text = json.dumps({"recommendedPlaces": [
            {"name": "Red Fort"}, {"name": "red  fort"}, {"name": "Qutub Minar"},
        ]})
        draft = ad.parse_place_response(text, "Delhi")
        assert [p.name for p in draft.places] == ["Red Fort", "Qutub Minar"]

    def test_nameless_places_dropped(self):
        text = json.dumps({"recommendedPlaces": [{"description": "?"}, {"name": "Baga Beach"}]})
        draft = ad.parse_place_response(text, "Goa")
        assert [p.name for p in draft.places] == ["Baga Beach"]

    def test_values_fitted_to_storage(self):
        text = json.dumps({"recommendedPlaces": [{
            "name": "Fort " + "x" * 400,
            "category": "Heritage " * 30,
            "estimatedCost": -10,
            "recommendedDuration": 1e12,
        }]})
        place = ad.parse_place_response(text, "Jaipur").places[0]
        assert len(place.name) == ad.MAX_PLACE_NAME_LENGTH
        assert place.name.startswith("Fort x")
        assert len(place.category) <= ad.MAX_PLACE_CATEGORY_LENGTH
        assert not place.category.endswith(" ")
        assert place.entry_fee is None
        assert place.recommended_duration_hours is None

    @pytest.mark.parametrize("hours, expected", [(0, 0), (168, 168), (169, None), (-1, None)])
    def test_visit_hours_range(self, hours, expected):
        text = json.dumps({"recommendedPlaces": [{"name": "X", "recommendedDuration": hours}]})
        assert ad.parse_place_response(text, "Y").places[0].recommended_duration_hours == expected

    def test_limits_match_columns(self):
        assert FamousPlace.__table__.c.name.type.length == ad.MAX_PLACE_NAME_LENGTH
        assert FamousPlace.__table__.c.name_key.type.length == ad.MAX_PLACE_NAME_LENGTH
        assert FamousPlace.__table__.c.category.type.length == ad.MAX_PLACE_CATEGORY_LENGTH

    def test_missing_total_is_none(self):
        draft = ad.parse_place_response('{"recommendedPlaces": [{"name": "X"}]}', "Y")
        assert draft.total_cost is None

    def test_prose_keyword_fallback(self):
        draft = ad.parse_place_response("You will love the old fort and the market.", "Jaipur")
        assert draft.source == "text"
        assert [p.name for p in draft.places] == ["Fort in Jaipur"]
        assert draft.places[0].category == "General"
        assert draft.reasoning == ad.TEXT_PLACE_REASONING

    def test_nothing_usable_returns_none(self):
        assert ad.parse_place_response("Sorry, I can't.", "Pune") is None
        assert ad.parse_place_response('{"recommendedPlaces": []}', "Pune") is None
