"""
Relational store for the travel planner - SQLAlchemy ORM over SQLite by default.

Four tables (users, trips, famous_places, chat_history) plus the ordered join
table trip_recommended_places. Any SQLAlchemy URL works through DATABASE_URL.
"""
import enum
import os
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import make_url
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

Base = declarative_base()

DEFAULT_DATABASE_URL = "sqlite:///./travel_planner.db"


def _utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def place_key(value: str) -> str:
    """Case-insensitive lookup key for a city or place name."""
    return " ".join((value or "").split()).lower()


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class ComfortLevel(str, enum.Enum):
    ECONOMY = "ECONOMY"
    COMFORT = "COMFORT"
    LUXURY = "LUXURY"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.USER)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    trips = relationship("Trip", back_populates="user", cascade="all, delete-orphan")
    chat_histories = relationship("ChatHistory", back_populates="user", cascade="all, delete-orphan")


class FamousPlace(Base):
    __tablename__ = "famous_places"
    # One row per (city, case-insensitive name); upserts target this constraint.
    __table_args__ = (
        UniqueConstraint("city_key", "name_key", name="uq_famous_places_city_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    city = Column(String(100), nullable=False, index=True)
    country = Column(String(100))
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)
    coordinates_known = Column(Boolean, nullable=False, default=False)
    category = Column(String(100))
    image_url = Column(String(500))
    entry_fee = Column(Float)
    recommended_duration_hours = Column(Integer)
    rating = Column(Float, nullable=False, default=4.0)
    best_time_to_visit = Column(String(255))
    city_key = Column(String(100), nullable=False, index=True)
    name_key = Column(String(255), nullable=False)


class TripRecommendedPlace(Base):
    __tablename__ = "trip_recommended_places"

    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), primary_key=True)
    place_id = Column(Integer, ForeignKey("famous_places.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    place = relationship("FamousPlace", lazy="joined")


class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    source_city = Column(String(100), nullable=False)
    destination_city = Column(String(100), nullable=False)
    source_lat = Column(Float, nullable=False)
    source_lng = Column(Float, nullable=False)
    dest_lat = Column(Float, nullable=False)
    dest_lng = Column(Float, nullable=False)
    passengers = Column(Integer, nullable=False, default=1)
    budget = Column(Float, nullable=False, default=0.0)
    comfort_level = Column(Enum(ComfortLevel, name="comfort_level"), nullable=False)
    recommended_mode = Column(String(20), nullable=False)  # car, train, bus, flight
    distance_estimate = Column(Float, nullable=False, default=0.0)  # km
    confidence_score = Column(Float, nullable=False, default=0.0)
    source_weather_summary = Column(Text)
    dest_weather_summary = Column(Text)
    conversation_id = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    user = relationship("User", back_populates="trips")
    place_links = relationship(
        "TripRecommendedPlace",
        order_by="TripRecommendedPlace.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    recommended_places = association_proxy(
        "place_links", "place", creator=lambda place: TripRecommendedPlace(place=place)
    )


class ChatHistory(Base):
    __tablename__ = "chat_history"
    __table_args__ = (
        Index("ix_chat_history_user_conversation", "user_id", "conversation_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_message = Column(Text, nullable=False)
    ai_response = Column(Text)
    conversation_id = Column(String(100), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, default=_utcnow)

    user = relationship("User", back_populates="chat_histories")


def database_url() -> str:
    """DATABASE_URL with DB_USER / DB_PASSWORD applied when they are set."""
    url = make_url(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL))
    user = os.getenv("DB_USER")
    password = os.getenv("DB_PASSWORD")
    if user:
        url = url.set(username=user)
    if password:
        url = url.set(password=password)
    return url.render_as_string(hide_password=False)


def make_engine(url: str | None = None, **kwargs):
    url = url or database_url()
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind=None):
    """Create every table that does not exist yet."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    return bind


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
