"""
Request and response models for the HTTP API.

Python attributes are snake_case; the wire format is camelCase.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from database import ChatHistory, ComfortLevel, FamousPlace, Role, Trip, User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class RegisterRequest(CamelModel):
    username: str
    email: str
    password: str

    @field_validator("username", "email", "password")
    @classmethod
    def _required(cls, value: str) -> str:
        return _not_blank(value)

    @field_validator("email")
    @classmethod
    def _looks_like_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("must be a valid email address")
        return value


class AdminRegisterRequest(RegisterRequest):
    admin_secret_code: str


class LoginRequest(CamelModel):
    username: str
    password: str


class TripRequest(CamelModel):
    source_city: str = Field(validation_alias=AliasChoices("sourceCity", "source", "source_city"))
    destination_city: str = Field(
        validation_alias=AliasChoices("destinationCity", "destination", "destination_city")
    )
    passengers: int = Field(1, ge=1)
    budget: float = Field(ge=0, allow_inf_nan=False)
    comfort_level: ComfortLevel
    interests: List[str] = Field(default_factory=list)
    trip_duration: Optional[int] = Field(None, ge=1, le=30)

    @field_validator("source_city", "destination_city")
    @classmethod
    def _city_required(cls, value: str) -> str:
        return _not_blank(value)


class ChatRequest(CamelModel):
    message: str
    conversation_id: Optional[str] = None

    @field_validator("message")
    @classmethod
    def _message_required(cls, value: str) -> str:
        return _not_blank(value)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class UserSummary(CamelModel):
    id: int
    username: str
    email: str
    role: Role
    created_at: datetime


class UserProfile(UserSummary):
    trip_count: int = 0
    chat_count: int = 0

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            created_at=user.created_at,
            trip_count=len(user.trips),
            chat_count=len(user.chat_histories),
        )


class AuthResponse(CamelModel):
    token: str
    user: UserSummary


class PlaceResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    city: str
    country: Optional[str] = None
    latitude: float
    longitude: float
    coordinates_known: bool
    category: Optional[str] = None
    image_url: Optional[str] = None
    entry_fee: Optional[float] = None
    recommended_duration_hours: Optional[int] = None
    rating: float
    best_time_to_visit: Optional[str] = None

    @classmethod
    def from_place(cls, place: FamousPlace) -> "PlaceResponse":
        return cls.model_validate(place)


class TripResponse(CamelModel):
    id: int
    username: str
    source_city: str
    destination_city: str
    source_lat: float
    source_lng: float
    dest_lat: float
    dest_lng: float
    passengers: int
    budget: float
    comfort_level: ComfortLevel
    recommended_mode: str
    distance_estimate: float
    confidence_score: float
    source_weather: Optional[str] = None
    destination_weather: Optional[str] = None
    created_at: datetime
    conversation_id: Optional[str] = None
    has_chat_history: bool
    recommended_places: List[PlaceResponse] = Field(default_factory=list)

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripResponse":
        return cls(
            id=trip.id,
            username=trip.user.username,
            source_city=trip.source_city,
            destination_city=trip.destination_city,
            source_lat=trip.source_lat,
            source_lng=trip.source_lng,
            dest_lat=trip.dest_lat,
            dest_lng=trip.dest_lng,
            passengers=trip.passengers,
            budget=trip.budget,
            comfort_level=trip.comfort_level,
            recommended_mode=trip.recommended_mode,
            distance_estimate=trip.distance_estimate,
            confidence_score=trip.confidence_score,
            source_weather=trip.source_weather_summary,
            destination_weather=trip.dest_weather_summary,
            created_at=trip.created_at,
            conversation_id=trip.conversation_id,
            has_chat_history=trip.conversation_id is not None,
            recommended_places=[PlaceResponse.from_place(p) for p in trip.recommended_places],
        )


class ChatTurn(CamelModel):
    id: int
    username: str
    user_message: str
    ai_response: Optional[str] = None
    conversation_id: str
    timestamp: datetime

    @classmethod
    def from_history(cls, turn: ChatHistory) -> "ChatTurn":
        return cls(
            id=turn.id,
            username=turn.user.username,
            user_message=turn.user_message,
            ai_response=turn.ai_response,
            conversation_id=turn.conversation_id,
            timestamp=turn.timestamp,
        )


class DailyItinerary(CamelModel):
    day: int
    places: List[str]
    description: str


class PlaceRecommendationResponse(CamelModel):
    recommended_places: List[PlaceResponse]
    daily_itinerary: List[DailyItinerary]
    total_cost_estimate: float
    reasoning: str


class ConversationStats(CamelModel):
    conversation_id: str
    username: str
    message_count: int
    first_timestamp: datetime
    last_timestamp: datetime


class ConversationDeleted(CamelModel):
    stats: ConversationStats
    deleted: int


class GeocodeResponse(CamelModel):
    city: str
    lat: float
    lng: float
    display_name: Optional[str] = None
    country: Optional[str] = None
    type: Optional[str] = None
    error: Optional[str] = None
