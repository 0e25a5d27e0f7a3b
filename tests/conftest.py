import sys
import os
import pytest
from unittest.mock import MagicMock

import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Project root: main, database, repositories, services/
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _root not in sys.path:
    sys.path.insert(0, _root)

from database import FamousPlace, Role, User, init_db, place_key
from errors import UpstreamUnavailable
from services.prompts import CHAT_SYSTEM, MODE_SYSTEM, PLACES_SYSTEM


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeChatModel:
    """Stands in for ChatModelClient; answers by which system prompt it gets.

    A reply may be a string or an exception instance (raised instead).
    """

    def __init__(self, mode=None, places=None, chat=None):
        self.replies = {MODE_SYSTEM: mode, PLACES_SYSTEM: places, CHAT_SYSTEM: chat}
        self.calls = []

    def complete(self, system_prompt, user_prompt, temperature=0.7):
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies.get(system_prompt)
        if reply is None:
            raise UpstreamUnavailable("no canned reply")
        if isinstance(reply, Exception):
            raise reply
        return reply

    def prompts_for(self, system_prompt):
        return [user for system, user in self.calls if system == system_prompt]


def offline_session():
    """requests stand-in whose every GET fails like a dead network."""
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("network unreachable")
    return session


def json_session(payload):
    """requests stand-in answering every GET with ``payload``."""
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    session = MagicMock()
    session.get.return_value = resp
    return session


MODE_JSON = (
    '{"recommendedMode": "flight", "distanceEstimate": 1400, '
    '"confidenceScore": 0.92, "reasoning": "Long distance and a generous budget"}'
)

PLACES_JSON = """```json
{
  "recommendedPlaces": [
    {"name": "Gateway of India", "description": "Arch monument on the harbour",
     "category": "Historical", "estimatedCost": 0, "recommendedDuration": 1},
    {"name": "Marine Drive", "description": "Seafront promenade",
     "category": "Relaxation", "estimatedCost": 0, "recommendedDuration": 2},
    {"name": "Chhatrapati Shivaji Maharaj Vastu Sangrahalaya", "description": "Museum",
     "category": "Historical", "estimatedCost": 150, "recommendedDuration": 3}
  ],
  "dailyItinerary": [
    {"day": 1, "places": ["Gateway of India", "Marine Drive"], "description": "South Mumbai"},
    {"day": 2, "places": ["Chhatrapati Shivaji Maharaj Vastu Sangrahalaya"], "description": "Museums"}
  ],
  "totalCostEstimate": 2500,
  "reasoning": "Classic first visit"
}
```"""


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = User(username="alice", email="alice@example.com", password_hash="not-a-real-hash")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def admin(db):
    u = User(username="root", email="root@example.com", password_hash="not-a-real-hash", role=Role.ADMIN)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def add_place(db):
    """Insert a stored place directly, bypassing the upsert path."""
    def _add(city, name, rating=4.0, **fields):
        place = FamousPlace(
            city=city, name=name, city_key=place_key(city), name_key=place_key(name),
            rating=rating, **fields,
        )
        db.add(place)
        db.commit()
        return place
    return _add
