"""
Travel-mode recommendation: chat model first, budget heuristic when it fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from dataclasses_json import dataclass_json

from errors import UpstreamUnavailable
from services.ai_adapter import parse_mode_response
from services.prompts import MODE_SYSTEM, mode_prompt

logger = logging.getLogger(__name__)

HEURISTIC = "heuristic"


@dataclass_json
@dataclass
class ModeRecommendation:
    mode: str
    distance_km: float
    confidence: float
    reasoning: str
    source: str = "json"  # json, text or heuristic
    raw_response: Optional[str] = None


def heuristic_mode(budget: float, comfort_level: str) -> ModeRecommendation:
    """Budget bands, with LUXURY bumping anything short of a flight to train."""
    if budget > 5000:
        rec = ModeRecommendation("flight", 800.0, 0.9, "Budget allows for comfortable air travel")
    elif budget > 1500:
        rec = ModeRecommendation("train", 500.0, 0.8, "Train offers good balance of comfort and cost")
    else:
        rec = ModeRecommendation("bus", 300.0, 0.7, "Most economical option for your budget")
    rec.source = HEURISTIC
    if comfort_level == "LUXURY" and rec.mode != "flight":
        rec.mode = "train"
        rec.reasoning += " with premium comfort options"
    return rec


class ModeRecommender:
    def __init__(self, chat_model):
        self.chat_model = chat_model

    def recommend(self, source: str, destination: str, passengers: int, budget: float,
                  comfort_level: str, source_weather: str, dest_weather: str) -> ModeRecommendation:
        prompt = mode_prompt(source, destination, passengers, budget, comfort_level,
                             source_weather, dest_weather)
        try:
            raw = self.chat_model.complete(MODE_SYSTEM, prompt, temperature=0.3)
        except UpstreamUnavailable as exc:
            logger.warning("Mode recommendation model call failed, using heuristic: %s", exc)
            return heuristic_mode(budget, comfort_level)

        record = parse_mode_response(raw)
        if record is None:
            logger.warning("Mode recommendation unreadable, using heuristic: %s", raw[:100])
            return heuristic_mode(budget, comfort_level)
        return ModeRecommendation(
            mode=record.mode,
            distance_km=record.distance_km,
            confidence=record.confidence,
            reasoning=record.reasoning,
            source=record.source,
            raw_response=raw,
        )
