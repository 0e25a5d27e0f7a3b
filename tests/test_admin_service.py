"""
Unit tests for services/admin_service.py

Tests cover:
- Listings and per-user views
- Cascading user deletion
- Conversation statistics and deletion (trips lose their chat link)
"""
import pytest

from conftest import FakeChatModel, offline_session
from database import ChatHistory, Trip
from errors import NotFoundError
from services.admin_service import AdminService
from services.chat_service import ChatService
from services.geocoding import Geocoder
from services.trip_service import TripPlanRequest, TripService
from services.weather import WeatherClient


def _make_trip(db, username="alice"):
    service = TripService(
        db,
        geocoder=Geocoder(session=offline_session()),
        weather=WeatherClient(session=offline_session()),
        chat_model=FakeChatModel(),
    )
    return service.create_trip(
        TripPlanRequest(source_city="Delhi", destination_city="Agra", budget=1000.0), username,
    )


class TestListings:
    def test_users_with_counts(self, db, user, admin):
        _make_trip(db)
        profiles = AdminService(db).list_users()
        alice = next(p for p in profiles if p.username == "alice")
        assert alice.trip_count == 1
        assert alice.chat_count == 2
        assert {p.username for p in profiles} == {"alice", "root"}

    def test_trips_and_chats(self, db, user):
        trip = _make_trip(db)
        service = AdminService(db)
        assert [t.id for t in service.list_trips()] == [trip.id]
        assert service.list_trips()[0].has_chat_history is True
        assert len(service.list_chats()) == 2

    def test_user_views(self, db, user):
        _make_trip(db)
        service = AdminService(db)
        assert len(service.user_trips(user.id)) == 1
        assert len(service.user_chats(user.id)) == 2

    def test_user_views_unknown_user(self, db):
        with pytest.raises(NotFoundError, match="User not found"):
            AdminService(db).user_trips(42)
        with pytest.raises(NotFoundError):
            AdminService(db).user_chats(42)


class TestDeletes:
    def test_delete_user_cascades(self, db, user):
        _make_trip(db)
        result = AdminService(db).delete_user(user.id)
        assert result == {"deletedUserId": user.id}
        assert db.query(Trip).count() == 0
        assert db.query(ChatHistory).count() == 0

    def test_delete_trip(self, db, user):
        trip = _make_trip(db)
        assert AdminService(db).delete_trip(trip.id) == {"deletedTripId": trip.id}
        assert db.query(Trip).count() == 0
        assert db.query(ChatHistory).count() == 2

    def test_delete_chat(self, db, user):
        turn = ChatService(db, FakeChatModel(chat="ok")).process_message("hi", "alice", "c1")
        assert AdminService(db).delete_chat(turn.id) == {"deletedChatId": turn.id}
        assert db.query(ChatHistory).count() == 0

    @pytest.mark.parametrize("method", ["delete_user", "delete_trip", "delete_chat"])
    def test_missing(self, db, method):
        with pytest.raises(NotFoundError):
            getattr(AdminService(db), method)(404)


class TestConversations:
    def test_stats(self, db, user):
        chat = ChatService(db, FakeChatModel(chat="ok"))
        chat.process_message("one", "alice", "c1")
        chat.process_message("two", "alice", "c1")
        stats = AdminService(db).conversation_stats("c1")
        assert stats.username == "alice"
        assert stats.message_count == 2
        assert stats.first_timestamp < stats.last_timestamp

    def test_stats_unknown(self, db):
        with pytest.raises(NotFoundError):
            AdminService(db).conversation_stats("nope")

    def test_delete_detaches_trip(self, db, user):
        trip = _make_trip(db)
        result = AdminService(db).delete_conversation(trip.conversation_id)
        assert result.deleted == 2
        assert result.stats.message_count == 2

        db.expire_all()
        stored = db.get(Trip, trip.id)
        assert stored.conversation_id is None
        assert AdminService(db).list_trips()[0].has_chat_history is False

    def test_delete_leaves_other_conversations(self, db, user):
        chat = ChatService(db, FakeChatModel(chat="ok"))
        chat.process_message("keep", "alice", "c1")
        chat.process_message("drop", "alice", "c2")
        AdminService(db).delete_conversation("c2")
        assert [t.user_message for t in db.query(ChatHistory).all()] == ["keep"]
