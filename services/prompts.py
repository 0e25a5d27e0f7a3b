"""
Prompt templates sent to the chat model.

The JSON shapes requested here are exactly what services.ai_adapter projects
(MODE_SCHEMA, PLACE_RECOMMENDATION_SCHEMA); edit both together.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

# ---------------------------------------------------------------------------
# Travel mode
# ---------------------------------------------------------------------------

MODE_SYSTEM = """\
You are a practical travel planner for Indian routes.
CRITICAL: Return ONLY valid JSON, no explanations.
- Use realistic distances for Indian travel
- Consider budget and comfort level seriously
- Be concise in reasoning (max 2 sentences)
- recommendedMode: car/train/bus/flight only
- distanceEstimate: realistic km between Indian cities
- confidenceScore: 0.0 to 1.0"""

_MODE_USER = """\
[TRAVEL ANALYSIS]
FROM: {source} TO: {destination}
PASSENGERS: {passengers} | BUDGET: ₹{budget:.2f} | COMFORT: {comfort}
WEATHER: {source_weather} (source) → {dest_weather} (destination)
RETURN ONLY VALID JSON (no other text):
{{
  "recommendedMode": "car/train/bus/flight",
  "distanceEstimate": 123.45,
  "confidenceScore": 0.85,
  "reasoning": "Brief practical explanation"
}}"""


def mode_prompt(source: str, destination: str, passengers: int, budget: float,
                comfort: str, source_weather: str, dest_weather: str) -> str:
    return _MODE_USER.format(
        source=source,
        destination=destination,
        passengers=passengers,
        budget=budget,
        comfort=comfort,
        source_weather=source_weather,
        dest_weather=dest_weather,
    )


# ---------------------------------------------------------------------------
# Places
# ---------------------------------------------------------------------------

PLACES_SYSTEM = """\
You are a practical travel expert for Indian destinations.
CRITICAL: Return ONLY valid JSON, no other text or markdown.
IMPORTANT FORMAT RULES:
- JSON must start with { and end with }
- No ```json or ``` markers
- No additional explanations
- Use double quotes for all strings
- estimatedCost must be numbers (not strings)
- recommendedDuration must be integers
Content guidelines:
- Suggest realistic, popular Indian places
- Use practical costs in Indian Rupees
- Keep descriptions brief and useful (max 20 words)
- recommendedDuration: realistic hours needed in count
- estimatedCost: realistic Indian entry fees in INR
- Be specific with place names"""

_PLACES_USER = """\
[TRAVEL GUIDE FOR {city}]
INTERESTS: {interests} | DURATION: {duration} days | BUDGET: ₹{budget:.2f} | COMPANIONS: {companions}
CONTEXT: {context}
RETURN ONLY VALID JSON (no other text):
{{
  "recommendedPlaces": [
    {{
      "name": "Specific Place Name",
      "description": "Brief practical description",
      "category": "Historical/Nature/Beach/Shopping/Food/Nightlife/Relaxation/Adventure/Religious",
      "estimatedCost": 100.00,
      "recommendedDuration": 2
    }}
  ],
  "dailyItinerary": [
    {{
      "day": 1,
      "places": ["Place A", "Place B"],
      "description": "Practical day plan"
    }}
  ],
  "totalCostEstimate": 500.00,
  "reasoning": "Concise matching explanation"
}}"""

EMPTY_PLACES_CONTEXT = "No places in database yet. Suggest popular attractions."


def places_context(places: Iterable) -> str:
    """Known places for a city, one line each, for the model's context."""
    lines = [
        "- {name} ({category}): ${fee:.2f} entry, {hours} hours, Rating: {rating:.1f}/5".format(
            name=place.name,
            category=place.category or "General",
            fee=place.entry_fee or 0.0,
            hours=place.recommended_duration_hours or 0,
            rating=place.rating or 0.0,
        )
        for place in places
    ]
    return "\n".join(lines) if lines else EMPTY_PLACES_CONTEXT


def places_prompt(city: str, interests: Sequence[str], duration: int, budget: float,
                  companions: str, context: str) -> str:
    return _PLACES_USER.format(
        city=city,
        interests=", ".join(interests) if interests else "general sightseeing",
        duration=duration,
        budget=budget,
        companions=companions,
        context=context,
    )


# ---------------------------------------------------------------------------
# Trip synthesis chat turns
# ---------------------------------------------------------------------------

def trip_planning_message(source: str, destination: str, passengers: int, budget: float,
                          comfort: str, source_condition: str, source_temp: float,
                          dest_condition: str, dest_temp: float, mode: str,
                          distance_km: float) -> str:
    return (
        f"Plan a trip from {source} to {destination}:\n"
        f"- Passengers: {passengers}\n"
        f"- Budget: ${budget:.2f}\n"
        f"- Comfort Level: {comfort}\n"
        f"- Source Weather: {source_condition} ({source_temp:.1f}°C)\n"
        f"- Destination Weather: {dest_condition} ({dest_temp:.1f}°C)\n"
        f"- Recommended Mode: {mode}\n"
        f"- Distance: {distance_km:.1f} km\n"
    )


def place_recommendation_message(destination: str, interests: Sequence[str], duration: Optional[int],
                                 budget: float, passengers: int) -> str:
    return (
        f"Recommend specific places to visit in {destination} for:\n"
        f"- Interests: {', '.join(interests) if interests else 'general'}\n"
        f"- Duration: {duration or 3} days\n"
        f"- Budget: ${budget:.2f}\n"
        f"- Travelers: {passengers} passengers\n"
        "Provide specific place names, daily itinerary, and cost estimates.\n"
    )


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

CHAT_SYSTEM = (
    "You are a helpful travel planning assistant. Provide concise and helpful "
    "responses about travel, trips, destinations, and planning."
)

CHAT_PREAMBLE = "You are a travel planning assistant. Help users with travel-related questions.\n\n"

CHAT_APOLOGY = "I apologize, but I'm having trouble responding right now. Please try again later."


def conversation_prompt(history: List[Tuple[str, Optional[str]]], message: str) -> str:
    """Preamble, prior turns as User:/Assistant: lines, then the new message."""
    parts = [CHAT_PREAMBLE]
    for user_message, ai_response in history:
        if user_message is not None:
            parts.append(f"User: {user_message}\n")
        if ai_response is not None:
            parts.append(f"Assistant: {ai_response}\n")
    parts.append(f"User: {message}")
    return "".join(parts)
