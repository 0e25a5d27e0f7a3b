"""
Trip synthesis: fan out to the geocoder, weather, and chat model, reconcile
whatever comes back, and persist one Trip with its two opening chat turns.

Dependency graph of the fan-out (each box is one worker):

    geocode(src) ──> weather(src) ──┐
                                    ├──> mode recommendation
    geocode(dst) ──> weather(dst) ──┘
    place recommendation (model only; stored places are loaded up front)

None of the workers raise for upstream trouble, so the only ways to fail are
an unknown user, invalid input, the database, or the client leaving before
the fan-out settles.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from database import ComfortLevel, Trip
from errors import (
    ForbiddenError,
    InputValidationError,
    NotFoundError,
    RequestAbandoned,
    UnauthorizedError,
)
from repositories import TripRepository, UserRepository
from services.chat_service import ChatService
from services.geocoding import Coordinates, Geocoder
from services.mode_recommender import ModeRecommendation, ModeRecommender
from services.place_recommender import DEFAULT_DURATION_DAYS, PlaceAnswer, PlaceRecommender
from services.prompts import place_recommendation_message, trip_planning_message
from services.weather import WeatherAnalysis, WeatherClient

logger = logging.getLogger(__name__)

_FANOUT_WORKERS = 6
ABANDON_POLL_SECONDS = 0.1
MAX_TRIP_DURATION_DAYS = 30
MAX_CITY_LENGTH = 100
MAX_PASSENGERS = 1000

_id_lock = threading.Lock()
_last_conversation_millis = 0


def mint_trip_conversation_id() -> str:
    """'trip_<millis>', strictly increasing within this process."""
    global _last_conversation_millis
    with _id_lock:
        millis = max(time.time_ns() // 1_000_000, _last_conversation_millis + 1)
        _last_conversation_millis = millis
    return f"trip_{millis}"


@dataclass
class TripPlanRequest:
    source_city: str
    destination_city: str
    passengers: int = 1
    budget: float = 0.0
    comfort_level: str = ComfortLevel.ECONOMY.value
    interests: List[str] = field(default_factory=list)
    trip_duration: Optional[int] = None

    def validate(self) -> None:
        """Raise InputValidationError naming the first bad field."""
        if not self.source_city or not self.source_city.strip():
            raise InputValidationError("sourceCity: must not be empty")
        if not self.destination_city or not self.destination_city.strip():
            raise InputValidationError("destinationCity: must not be empty")
        if len(self.source_city.strip()) > MAX_CITY_LENGTH:
            raise InputValidationError(f"sourceCity: must be at most {MAX_CITY_LENGTH} characters")
        if len(self.destination_city.strip()) > MAX_CITY_LENGTH:
            raise InputValidationError(f"destinationCity: must be at most {MAX_CITY_LENGTH} characters")
        if self.passengers is None or self.passengers < 1:
            raise InputValidationError("passengers: must be at least 1")
        if self.passengers > MAX_PASSENGERS:
            raise InputValidationError(f"passengers: must be at most {MAX_PASSENGERS}")
        if self.budget is None or not math.isfinite(self.budget) or self.budget < 0:
            raise InputValidationError("budget: must be a non-negative number")
        if self.comfort_level not in ComfortLevel.__members__:
            raise InputValidationError(
                "comfortLevel: must be one of " + ", ".join(ComfortLevel.__members__)
            )
        if self.trip_duration is not None and not 1 <= self.trip_duration <= MAX_TRIP_DURATION_DAYS:
            raise InputValidationError(f"tripDuration: must be between 1 and {MAX_TRIP_DURATION_DAYS}")

    @property
    def duration(self) -> int:
        return self.trip_duration or DEFAULT_DURATION_DAYS

    @property
    def companions(self) -> str:
        return f"{self.passengers} passengers"


@dataclass
class _Gathered:
    source: Coordinates
    destination: Coordinates
    source_weather: WeatherAnalysis
    dest_weather: WeatherAnalysis
    mode: ModeRecommendation
    places: PlaceAnswer


class TripService:
    def __init__(self, db: Session, geocoder: Optional[Geocoder] = None,
                 weather: Optional[WeatherClient] = None, chat_model=None):
        self.db = db
        self.geocoder = geocoder
        self.weather = weather
        self.mode_recommender = ModeRecommender(chat_model)
        self.place_recommender = PlaceRecommender(chat_model)
        self.chat_service = ChatService(db, chat_model)
        self.users = UserRepository(db)
        self.trips = TripRepository(db)

    # -- fan-out -------------------------------------------------------------

    def _gather(self, request: TripPlanRequest, places_context: str,
                abandoned: threading.Event) -> _Gathered:
        source = request.source_city.strip()
        destination = request.destination_city.strip()

        def unless_abandoned(fn, *args):
            if abandoned.is_set():
                raise RequestAbandoned("Client disconnected")
            return fn(*args)

        def weather_for(coords: Future) -> WeatherAnalysis:
            point = coords.result()
            return unless_abandoned(self.weather.get_weather_analysis, point.lat, point.lng)

        def mode_for(src_wx: Future, dst_wx: Future) -> ModeRecommendation:
            return unless_abandoned(
                self.mode_recommender.recommend,
                source, destination, request.passengers, request.budget,
                request.comfort_level, src_wx.result().condition, dst_wx.result().condition,
            )

        # Enough workers that a task waiting on another future never starves it.
        pool = ThreadPoolExecutor(max_workers=_FANOUT_WORKERS)
        try:
            src_f = pool.submit(unless_abandoned, self.geocoder.get_coordinates, source)
            dst_f = pool.submit(unless_abandoned, self.geocoder.get_coordinates, destination)
            places_f = pool.submit(
                unless_abandoned, self.place_recommender.ask, destination, request.interests,
                request.duration, request.budget, request.companions, places_context,
            )
            src_wx_f = pool.submit(weather_for, src_f)
            dst_wx_f = pool.submit(weather_for, dst_f)
            mode_f = pool.submit(mode_for, src_wx_f, dst_wx_f)

            pending = {src_f, dst_f, places_f, src_wx_f, dst_wx_f, mode_f}
            while pending:
                if abandoned.is_set():
                    logger.info("Trip from %s to %s abandoned with %d upstream calls outstanding",
                                source, destination, len(pending))
                    raise RequestAbandoned("Client disconnected")
                _, pending = wait(pending, timeout=ABANDON_POLL_SECONDS)

            return _Gathered(
                source=src_f.result(),
                destination=dst_f.result(),
                source_weather=src_wx_f.result(),
                dest_weather=dst_wx_f.result(),
                mode=mode_f.result(),
                places=places_f.result(),
            )
        finally:
            # Calls already on the wire finish in the background under their own timeouts.
            pool.shutdown(wait=not abandoned.is_set(), cancel_futures=True)

    # -- operations ----------------------------------------------------------

    def create_trip(self, request: TripPlanRequest, username: str,
                    abandoned: Optional[threading.Event] = None) -> Trip:
        """Plan and persist one trip.

        Setting ``abandoned`` while the fan-out runs skips every upstream call
        not yet issued and raises RequestAbandoned without writing anything.
        """
        request.validate()
        user = self.users.get_by_username(username)
        if user is None:
            raise UnauthorizedError(f"Unknown user: {username}")

        logger.info("Creating trip for %s from %s to %s",
                    username, request.source_city, request.destination_city)
        destination = request.destination_city.strip()
        # Session work stays on this thread; workers only touch the network.
        context = self.place_recommender.load_context(self.db, destination)
        if abandoned is None:
            abandoned = threading.Event()
        gathered = self._gather(request, context, abandoned)

        places = self.place_recommender.materialise(self.db, destination, gathered.places, request.duration)
        self.db.commit()

        conversation_id = mint_trip_conversation_id()
        mode = gathered.mode
        src_wx, dst_wx = gathered.source_weather, gathered.dest_weather
        try:
            self.chat_service.record_turn(
                user,
                trip_planning_message(
                    request.source_city, request.destination_city, request.passengers,
                    request.budget, request.comfort_level,
                    src_wx.condition, src_wx.temperature_c,
                    dst_wx.condition, dst_wx.temperature_c,
                    mode.mode, mode.distance_km,
                ),
                mode.raw_response or mode.reasoning,
                conversation_id,
            )
            self.chat_service.record_turn(
                user,
                place_recommendation_message(
                    destination, request.interests, request.trip_duration,
                    request.budget, request.passengers,
                ),
                places.raw_response or places.reasoning,
                conversation_id,
            )
            trip = Trip(
                user=user,
                source_city=request.source_city.strip(),
                destination_city=destination,
                source_lat=gathered.source.lat,
                source_lng=gathered.source.lng,
                dest_lat=gathered.destination.lat,
                dest_lng=gathered.destination.lng,
                passengers=request.passengers,
                budget=request.budget,
                comfort_level=ComfortLevel[request.comfort_level],
                recommended_mode=mode.mode,
                distance_estimate=mode.distance_km,
                confidence_score=mode.confidence,
                source_weather_summary=src_wx.summary(),
                dest_weather_summary=dst_wx.summary(),
                conversation_id=conversation_id,
            )
            trip.recommended_places.extend(places.places)
            self.trips.add(trip)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Trip %s created with conversation %s", trip.id, conversation_id)
        return trip

    def get_user_trips(self, username: str) -> List[Trip]:
        user = self.users.get_by_username(username)
        if user is None:
            raise UnauthorizedError(f"Unknown user: {username}")
        return self.trips.list_for_user(user.id)

    def get_user_trip(self, trip_id: int, username: str) -> Trip:
        trip = self.trips.get(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip not found: {trip_id}")
        if trip.user.username != username:
            raise ForbiddenError("Access denied")
        return trip
