"""
Administrator views over users, trips, and conversations.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from errors import NotFoundError
from repositories import ChatHistoryRepository, TripRepository, UserRepository
from schemas import ChatTurn, ConversationDeleted, ConversationStats, TripResponse, UserProfile

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.trips = TripRepository(db)
        self.chats = ChatHistoryRepository(db)

    # -- listings ------------------------------------------------------------

    def list_users(self) -> List[UserProfile]:
        return [UserProfile.from_user(u) for u in self.users.list_all()]

    def list_trips(self) -> List[TripResponse]:
        return [TripResponse.from_trip(t) for t in self.trips.list_all()]

    def list_chats(self) -> List[ChatTurn]:
        return [ChatTurn.from_history(c) for c in self.chats.list_all()]

    def user_trips(self, user_id: int) -> List[TripResponse]:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return [TripResponse.from_trip(t) for t in self.trips.list_for_user(user.id)]

    def user_chats(self, user_id: int) -> List[ChatTurn]:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return [ChatTurn.from_history(c) for c in self.chats.list_for_user(user.id)]

    # -- deletions -----------------------------------------------------------

    def delete_user(self, user_id: int) -> Dict[str, int]:
        """Delete a user together with their trips and chat history."""
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        username = user.username
        self.users.delete(user)
        self.db.commit()
        logger.info("Deleted user %s (%s)", user_id, username)
        return {"deletedUserId": user_id}

    def delete_trip(self, trip_id: int) -> Dict[str, int]:
        trip = self.trips.get(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip not found: {trip_id}")
        self.trips.delete(trip)
        self.db.commit()
        return {"deletedTripId": trip_id}

    def delete_chat(self, chat_id: int) -> Dict[str, int]:
        turn = self.chats.get(chat_id)
        if turn is None:
            raise NotFoundError(f"Chat not found: {chat_id}")
        self.chats.delete(turn)
        self.db.commit()
        return {"deletedChatId": chat_id}

    def conversation_stats(self, conversation_id: str) -> ConversationStats:
        turns = self.chats.list_conversation(conversation_id)
        if not turns:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return ConversationStats(
            conversation_id=conversation_id,
            username=turns[0].user.username,
            message_count=len(turns),
            first_timestamp=turns[0].timestamp,
            last_timestamp=turns[-1].timestamp,
        )

    def delete_conversation(self, conversation_id: str) -> ConversationDeleted:
        """Remove every turn of a conversation and detach trips that pointed at it."""
        stats = self.conversation_stats(conversation_id)
        deleted = self.chats.delete_conversation(conversation_id)
        detached = self.trips.clear_conversation(conversation_id)
        self.db.commit()
        logger.info("Deleted conversation %s: %d turns, %d trips detached",
                    conversation_id, deleted, detached)
        return ConversationDeleted(stats=stats, deleted=deleted)
