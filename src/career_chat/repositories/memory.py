"""In-memory repository implementation."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

import structlog

from ..domain.errors import PersistenceError
from ..domain.models import ChatSession, Message, SessionSummary, User
from .base import Repository

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Async-safe in-memory record store.

    Messages are kept per session in append order, so two messages with the
    same timestamp still come back in the order they were written.
    """

    def __init__(self) -> None:
        """Initialize the repository with empty storage."""
        self._users: Dict[str, User] = {}
        self._sessions: Dict[UUID, ChatSession] = {}
        self._messages: Dict[UUID, List[Message]] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    async def upsert_user(
        self, user_id: str, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                user = User(id=user_id, name=name, email=email)
                self._users[user_id] = user
                logger.info("user_created", user_id=user_id)
            return user.model_copy()

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    async def create_session(self, session: ChatSession) -> ChatSession:
        async with self._lock:
            self._sessions[session.id] = session.model_copy()
            self._messages[session.id] = []
            logger.info("session_created", session_id=str(session.id))
        return session

    async def get_session(self, session_id: UUID) -> Optional[ChatSession]:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning("session_not_found", session_id=str(session_id))
                return None
            return session.model_copy()

    async def list_sessions(
        self, user_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[SessionSummary]:
        async with self._lock:
            sessions = [
                s for s in self._sessions.values()
                if user_id is None or s.user_id == user_id
            ]
            sessions.sort(
                key=lambda s: (s.updated_at, s.created_at, str(s.id)), reverse=True
            )

            summaries = []
            for session in sessions[offset : offset + limit]:
                messages = self._messages.get(session.id, [])
                summaries.append(
                    SessionSummary(
                        **session.model_dump(),
                        message_count=len(messages),
                        last_message=messages[-1] if messages else None,
                    )
                )
            return summaries

    async def update_session(
        self,
        session_id: UUID,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ) -> Optional[ChatSession]:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None

            changes = {}
            if title is not None:
                changes["title"] = title
            if description is not None:
                changes["description"] = description
            if updated_at is not None:
                changes["updated_at"] = updated_at

            session = session.model_copy(update=changes)
            self._sessions[session_id] = session
            return session.model_copy()

    async def delete_session(self, session_id: UUID) -> bool:
        async with self._lock:
            if self._sessions.pop(session_id, None) is None:
                return False
            removed = self._messages.pop(session_id, [])
            logger.info(
                "session_deleted",
                session_id=str(session_id),
                messages_removed=len(removed),
            )
            return True

    async def add_message(self, message: Message) -> Message:
        async with self._lock:
            if message.session_id not in self._sessions:
                logger.error(
                    "session_not_found_for_message",
                    session_id=str(message.session_id),
                )
                raise PersistenceError(f"Session {message.session_id} not found")

            self._messages[message.session_id].append(message)
            logger.info(
                "message_added",
                session_id=str(message.session_id),
                message_role=message.role.value,
            )
            return message

    async def get_messages(
        self, session_id: UUID, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        async with self._lock:
            messages = self._messages.get(session_id, [])
            # Stable sort keeps append order for equal timestamps
            ordered = sorted(messages, key=lambda m: m.created_at)
            end = None if limit is None else offset + limit
            return ordered[offset:end]
