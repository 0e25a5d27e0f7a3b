"""
Unit tests for services/chat_service.py

Tests cover:
- Turns are persisted with and without a working model
- Prior turns of the same conversation become the prompt
- Timestamps strictly increase within a conversation
"""
import pytest

from conftest import FakeChatModel
from database import ChatHistory
from errors import UnauthorizedError
from services.chat_service import ChatService
from services.prompts import CHAT_APOLOGY, CHAT_PREAMBLE, CHAT_SYSTEM


class TestProcessMessage:
    def test_new_conversation(self, db, user):
        turn = ChatService(db, FakeChatModel(chat="Try Goa in winter.")).process_message(
            "Where should I go?", "alice",
        )
        assert turn.id is not None
        assert turn.ai_response == "Try Goa in winter."
        assert turn.conversation_id
        assert turn.user_id == user.id

    def test_blank_conversation_id_starts_new_one(self, db, user):
        service = ChatService(db, FakeChatModel(chat="ok"))
        a = service.process_message("hi", "alice", conversation_id="")
        b = service.process_message("hi", "alice", conversation_id=None)
        assert a.conversation_id and b.conversation_id
        assert a.conversation_id != b.conversation_id

    def test_model_down_stores_apology(self, db, user):
        turn = ChatService(db, FakeChatModel()).process_message("hello?", "alice", "c1")
        assert turn.ai_response == CHAT_APOLOGY
        db.rollback()
        assert db.query(ChatHistory).count() == 1

    def test_history_in_prompt(self, db, user):
        model = FakeChatModel(chat="Sure.")
        service = ChatService(db, model)
        service.process_message("I like beaches", "alice", "c1")
        service.process_message("unrelated", "alice", "c2")
        service.process_message("Any suggestions?", "alice", "c1")

        prompt = model.prompts_for(CHAT_SYSTEM)[-1]
        assert prompt == (
            CHAT_PREAMBLE
            + "User: I like beaches\n"
            + "Assistant: Sure.\n"
            + "User: Any suggestions?"
        )

    def test_unknown_user(self, db):
        with pytest.raises(UnauthorizedError):
            ChatService(db, FakeChatModel(chat="x")).process_message("hi", "ghost")


class TestHistory:
    def test_timestamps_strictly_increase(self, db, user):
        service = ChatService(db, FakeChatModel(chat="ok"))
        for i in range(5):
            service.process_message(f"m{i}", "alice", "c1")
        turns = service.history("alice", "c1")
        assert [t.user_message for t in turns] == [f"m{i}" for i in range(5)]
        stamps = [t.timestamp for t in turns]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    def test_filter_by_conversation(self, db, user):
        service = ChatService(db, FakeChatModel(chat="ok"))
        service.process_message("a", "alice", "c1")
        service.process_message("b", "alice", "c2")
        assert [t.user_message for t in service.history("alice")] == ["a", "b"]
        assert [t.user_message for t in service.history("alice", "c2")] == ["b"]

    def test_other_users_turns_hidden(self, db, user, admin):
        service = ChatService(db, FakeChatModel(chat="ok"))
        service.process_message("mine", "alice", "shared")
        service.process_message("theirs", "root", "shared")
        assert [t.user_message for t in service.history("alice", "shared")] == ["mine"]

    def test_record_turn_does_not_commit(self, db, user):
        ChatService(db, FakeChatModel()).record_turn(user, "m", "r", "c9")
        db.rollback()
        assert db.query(ChatHistory).count() == 0
