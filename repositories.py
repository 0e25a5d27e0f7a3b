"""
Persistence ports: thin repositories over the SQLAlchemy session.

Repositories never commit. The service that owns the unit of work decides
when a transaction ends, so a trip and its chat turns land together.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from database import ChatHistory, FamousPlace, Trip, User, _utcnow, place_key

DEFAULT_PLACE_RATING = 4.0
TOP_RATED_THRESHOLD = 4.0

# Fields a model-proposed place may refresh on an existing row.
_UPSERT_COLUMNS = ("description", "category", "entry_fee", "recommended_duration_hours")

_DIALECT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def username_exists(self, username: str) -> bool:
        return self.db.query(User.id).filter(User.username == username).first() is not None

    def email_exists(self, email: str) -> bool:
        return self.db.query(User.id).filter(User.email == email).first() is not None

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def list_all(self) -> list[User]:
        return self.db.query(User).order_by(User.id).all()

    def delete(self, user: User) -> None:
        self.db.delete(user)
        self.db.flush()


class TripRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, trip_id: int) -> Optional[Trip]:
        return self.db.get(Trip, trip_id)

    def add(self, trip: Trip) -> Trip:
        self.db.add(trip)
        self.db.flush()
        return trip

    def list_for_user(self, user_id: int) -> list[Trip]:
        return (
            self.db.query(Trip)
            .filter(Trip.user_id == user_id)
            .order_by(Trip.created_at.desc(), Trip.id.desc())
            .all()
        )

    def list_all(self) -> list[Trip]:
        return self.db.query(Trip).order_by(Trip.id).all()

    def delete(self, trip: Trip) -> None:
        self.db.delete(trip)
        self.db.flush()

    def clear_conversation(self, conversation_id: str) -> int:
        """Detach every trip from a conversation that no longer exists."""
        count = (
            self.db.query(Trip)
            .filter(Trip.conversation_id == conversation_id)
            .update({Trip.conversation_id: None}, synchronize_session="fetch")
        )
        return count


class PlaceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, place_id: int) -> Optional[FamousPlace]:
        return self.db.get(FamousPlace, place_id)

    def list_all(self, page: Optional[int] = None, size: Optional[int] = None) -> list[FamousPlace]:
        query = self.db.query(FamousPlace).order_by(FamousPlace.id)
        if page is not None and size:
            query = query.offset(page * size).limit(size)
        return query.all()

    def list_by_city(self, city: str, page: Optional[int] = None,
                     size: Optional[int] = None) -> list[FamousPlace]:
        query = (
            self.db.query(FamousPlace)
            .filter(FamousPlace.city_key == place_key(city))
            .order_by(FamousPlace.rating.desc(), FamousPlace.id)
        )
        if page is not None and size:
            query = query.offset(page * size).limit(size)
        return query.all()

    def list_by_city_and_category(self, city: str, category: str) -> list[FamousPlace]:
        return (
            self.db.query(FamousPlace)
            .filter(FamousPlace.city_key == place_key(city))
            .filter(func.lower(FamousPlace.category) == category.strip().lower())
            .order_by(FamousPlace.rating.desc(), FamousPlace.id)
            .all()
        )

    def top_rated(self, city: str, min_rating: float = TOP_RATED_THRESHOLD) -> list[FamousPlace]:
        return (
            self.db.query(FamousPlace)
            .filter(FamousPlace.city_key == place_key(city))
            .filter(FamousPlace.rating >= min_rating)
            .order_by(FamousPlace.rating.desc(), FamousPlace.id)
            .all()
        )

    def find(self, city: str, name: str) -> Optional[FamousPlace]:
        return (
            self.db.query(FamousPlace)
            .populate_existing()
            .filter(FamousPlace.city_key == place_key(city))
            .filter(FamousPlace.name_key == place_key(name))
            .first()
        )

    def upsert(
        self,
        city: str,
        name: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        entry_fee: Optional[float] = None,
        recommended_duration_hours: Optional[int] = None,
    ) -> FamousPlace:
        """Insert a place, or refresh the fields the caller supplied.

        Keyed on (city, case-insensitive name). Values left as None keep
        whatever the stored row already has.
        """
        city = " ".join(city.split())
        name = " ".join(name.split())
        values = {
            "name": name,
            "city": city,
            "city_key": place_key(city),
            "name_key": place_key(name),
            "description": description,
            "category": category,
            "entry_fee": entry_fee,
            "recommended_duration_hours": recommended_duration_hours,
            "rating": DEFAULT_PLACE_RATING,
            "latitude": 0.0,
            "longitude": 0.0,
            "coordinates_known": False,
        }
        insert = _DIALECT_INSERTS.get(self.db.get_bind().dialect.name)
        if insert is not None:
            table = FamousPlace.__table__
            stmt = insert(table).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.city_key, table.c.name_key],
                set_={
                    column: func.coalesce(getattr(stmt.excluded, column), table.c[column])
                    for column in _UPSERT_COLUMNS
                },
            )
            self.db.execute(stmt)
            return self.find(city, name)

        # Other dialects: read-then-write inside the caller's transaction.
        place = self.find(city, name)
        if place is None:
            place = FamousPlace(**values)
            self.db.add(place)
        else:
            for column in _UPSERT_COLUMNS:
                if values[column] is not None:
                    setattr(place, column, values[column])
        self.db.flush()
        return place


class ChatHistoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, chat_id: int) -> Optional[ChatHistory]:
        return self.db.get(ChatHistory, chat_id)

    def add_turn(self, user: User, user_message: str, ai_response: str, conversation_id: str) -> ChatHistory:
        """Append a turn, keeping timestamps strictly increasing per conversation."""
        timestamp = _utcnow()
        last = (
            self.db.query(func.max(ChatHistory.timestamp))
            .filter(ChatHistory.conversation_id == conversation_id)
            .scalar()
        )
        if last is not None and timestamp <= last:
            timestamp = last + timedelta(microseconds=1)
        turn = ChatHistory(
            user_id=user.id,
            user_message=user_message,
            ai_response=ai_response,
            conversation_id=conversation_id,
            timestamp=timestamp,
        )
        self.db.add(turn)
        self.db.flush()
        return turn

    def list_for_user(self, user_id: int, conversation_id: Optional[str] = None) -> list[ChatHistory]:
        query = self.db.query(ChatHistory).filter(ChatHistory.user_id == user_id)
        if conversation_id:
            query = query.filter(ChatHistory.conversation_id == conversation_id)
        return query.order_by(ChatHistory.timestamp, ChatHistory.id).all()

    def list_conversation(self, conversation_id: str) -> list[ChatHistory]:
        return (
            self.db.query(ChatHistory)
            .filter(ChatHistory.conversation_id == conversation_id)
            .order_by(ChatHistory.timestamp, ChatHistory.id)
            .all()
        )

    def list_all(self) -> list[ChatHistory]:
        return self.db.query(ChatHistory).order_by(ChatHistory.timestamp, ChatHistory.id).all()

    def delete(self, turn: ChatHistory) -> None:
        self.db.delete(turn)
        self.db.flush()

    def delete_conversation(self, conversation_id: str) -> int:
        count = (
            self.db.query(ChatHistory)
            .filter(ChatHistory.conversation_id == conversation_id)
            .delete(synchronize_session="fetch")
        )
        return count
