"""Base repository interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ..domain.models import ChatSession, Message, SessionSummary, User


class Repository(ABC):
    """Abstract record store for users, chat sessions and messages.

    Every method is a single atomic write or read. Implementations raise
    ``PersistenceError`` when the underlying store fails.
    """

    @abstractmethod
    async def upsert_user(
        self, user_id: str, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        """Create the user if absent. An existing user is returned untouched."""
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by ID."""
        pass

    @abstractmethod
    async def create_session(self, session: ChatSession) -> ChatSession:
        """Store a new chat session."""
        pass

    @abstractmethod
    async def get_session(self, session_id: UUID) -> Optional[ChatSession]:
        """Retrieve a chat session by ID."""
        pass

    @abstractmethod
    async def list_sessions(
        self, user_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[SessionSummary]:
        """List sessions, most recently updated first, each with its latest message."""
        pass

    @abstractmethod
    async def update_session(
        self,
        session_id: UUID,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ) -> Optional[ChatSession]:
        """Apply the given field changes. Returns None if the session is missing."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: UUID) -> bool:
        """Delete a session and all of its messages. Returns False if it was missing."""
        pass

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Append a message to its session."""
        pass

    @abstractmethod
    async def get_messages(
        self, session_id: UUID, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        """Get messages for a session, oldest first."""
        pass
