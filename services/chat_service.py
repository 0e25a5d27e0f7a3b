"""
Multi-turn travel chat. Every turn is stored, even when the model is down.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from database import ChatHistory, User
from errors import UnauthorizedError, UpstreamUnavailable
from repositories import ChatHistoryRepository, UserRepository
from services.prompts import CHAT_APOLOGY, CHAT_SYSTEM, conversation_prompt

logger = logging.getLogger(__name__)


def new_conversation_id() -> str:
    return str(uuid.uuid4())


class ChatService:
    def __init__(self, db: Session, chat_model):
        self.db = db
        self.chat_model = chat_model
        self.users = UserRepository(db)
        self.chats = ChatHistoryRepository(db)

    def _user(self, username: str) -> User:
        user = self.users.get_by_username(username)
        if user is None:
            raise UnauthorizedError(f"Unknown user: {username}")
        return user

    def _reply(self, user: User, message: str, conversation_id: str) -> str:
        history = self.chats.list_for_user(user.id, conversation_id)
        prompt = conversation_prompt([(t.user_message, t.ai_response) for t in history], message)
        try:
            return self.chat_model.complete(CHAT_SYSTEM, prompt, temperature=0.7)
        except UpstreamUnavailable as exc:
            logger.warning("Chat model unavailable for conversation %s: %s", conversation_id, exc)
            return CHAT_APOLOGY

    def process_message(self, message: str, username: str,
                        conversation_id: Optional[str] = None) -> ChatHistory:
        """Answer one user message within a conversation and persist the turn."""
        user = self._user(username)
        if not conversation_id:
            conversation_id = new_conversation_id()
        reply = self._reply(user, message, conversation_id)
        turn = self.chats.add_turn(user, message, reply, conversation_id)
        self.db.commit()
        return turn

    def record_turn(self, user: User, message: str, reply: str, conversation_id: str) -> ChatHistory:
        """Store a turn whose reply was produced elsewhere. Does not commit."""
        return self.chats.add_turn(user, message, reply, conversation_id)

    def history(self, username: str, conversation_id: Optional[str] = None) -> List[ChatHistory]:
        user = self._user(username)
        return self.chats.list_for_user(user.id, conversation_id)
