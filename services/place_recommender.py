"""
Points of interest and a day-by-day itinerary for a destination city.

The work is split so the trip synthesiser can run the slow part off the
request thread:

  load_context()  reads known places for the city            (database)
  ask()           prompts the model and parses the answer    (network only)
  materialise()   upserts proposed places, applies fallbacks (database)

recommend() chains the three for the stand-alone endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from dataclasses_json import dataclass_json
from sqlalchemy.orm import Session

from database import FamousPlace
from errors import UpstreamUnavailable
from repositories import PlaceRepository
from services.ai_adapter import PlaceResponseDraft, parse_place_response
from services.prompts import PLACES_SYSTEM, places_context, places_prompt

logger = logging.getLogger(__name__)

MAX_PLACES_PER_DAY = 4
DEFAULT_DURATION_DAYS = 3


@dataclass_json
@dataclass
class DailyPlan:
    day: int
    place_names: List[str] = field(default_factory=list)
    description: str = "Daily itinerary"


@dataclass
class PlaceAnswer:
    """What came back from the model for one city."""

    raw_response: Optional[str]
    draft: Optional[PlaceResponseDraft]


@dataclass
class PlaceRecommendation:
    places: List[FamousPlace]
    daily_itinerary: List[DailyPlan]
    total_cost_estimate: float
    reasoning: str
    raw_response: Optional[str] = None


def total_entry_fees(places: Sequence[FamousPlace]) -> float:
    return float(sum(place.entry_fee or 0.0 for place in places))


class PlaceRecommender:
    def __init__(self, chat_model):
        self.chat_model = chat_model

    # -- phases -------------------------------------------------------------

    @staticmethod
    def load_context(db: Session, city: str) -> str:
        return places_context(PlaceRepository(db).list_by_city(city))

    def ask(self, city: str, interests: Sequence[str], duration: int, budget: float,
            companions: str, context: str) -> PlaceAnswer:
        prompt = places_prompt(city, interests, duration, budget, companions, context)
        try:
            raw = self.chat_model.complete(PLACES_SYSTEM, prompt, temperature=0.5)
        except UpstreamUnavailable as exc:
            logger.warning("Place recommendation model call failed for %s: %s", city, exc)
            return PlaceAnswer(raw_response=None, draft=None)
        draft = parse_place_response(raw, city)
        if draft is None:
            logger.warning("Place recommendation for %s unreadable: %s", city, raw[:100])
        return PlaceAnswer(raw_response=raw, draft=draft)

    @staticmethod
    def materialise(db: Session, city: str, answer: PlaceAnswer,
                    duration: int = DEFAULT_DURATION_DAYS) -> PlaceRecommendation:
        """Store the proposed places and shape the response. Does not commit."""
        repo = PlaceRepository(db)
        capacity = max(duration, 1) * MAX_PLACES_PER_DAY
        draft = answer.draft

        if draft is None:
            places = repo.top_rated(city)[:capacity]
            return PlaceRecommendation(
                places=places,
                daily_itinerary=[],
                total_cost_estimate=total_entry_fees(places),
                reasoning=f"Top-rated places in {city}",
                raw_response=answer.raw_response,
            )

        places = [
            repo.upsert(
                city,
                proposed.name,
                description=proposed.description,
                category=proposed.category,
                entry_fee=proposed.entry_fee,
                recommended_duration_hours=proposed.recommended_duration_hours,
            )
            for proposed in draft.places[:capacity]
        ]
        days = [
            DailyPlan(day=day.day, place_names=list(day.places), description=day.description)
            for day in draft.days
            if 1 <= day.day <= duration
        ]
        total = draft.total_cost
        if total is None:
            total = total_entry_fees(places)
        return PlaceRecommendation(
            places=places,
            daily_itinerary=days,
            total_cost_estimate=total,
            reasoning=draft.reasoning or f"AI-curated itinerary for {city}",
            raw_response=answer.raw_response,
        )

    # -- all together ---------------------------------------------------------

    def recommend(self, db: Session, city: str, interests: Sequence[str] = (),
                  duration: int = DEFAULT_DURATION_DAYS, budget: float = 0.0,
                  companions: str = "solo") -> PlaceRecommendation:
        context = self.load_context(db, city)
        answer = self.ask(city, interests, duration, budget, companions, context)
        recommendation = self.materialise(db, city, answer, duration)
        db.commit()
        return recommendation
