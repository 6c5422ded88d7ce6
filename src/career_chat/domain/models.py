"""Domain models for the career chat application."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

# Hard cap on a single turn, mirrored by the chat input box
MAX_CONTENT_LENGTH = 2000
MAX_TITLE_LENGTH = 200


class Role(str, Enum):
    """Author of a conversational turn."""

    USER = "user"
    ASSISTANT = "assistant"


class User(BaseModel):
    """Identity anchor for chat sessions."""

    id: str = Field(min_length=1)
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Message(BaseModel):
    """Message model."""

    id: UUID = Field(default_factory=uuid4)
    session_id: UUID
    content: str = Field(min_length=1)
    role: Role
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ChatSession(BaseModel):
    """Chat session model."""

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None
    user_id: Optional[str] = None
    service_type: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SessionSummary(ChatSession):
    """A session enriched with its latest message, for sidebar listings."""

    message_count: int = 0
    last_message: Optional[Message] = None


class Exchange(BaseModel):
    """One completed user/assistant round trip."""

    user_message: Message
    assistant_message: Message


class Turn(BaseModel):
    """Provider-facing view of a single message."""

    role: Role
    content: str


class AssembledConversation(BaseModel):
    """System instruction plus the ordered turns sent to the provider."""

    system_instruction: str
    turns: List[Turn]


class SessionCreate(BaseModel):
    """Request body for creating a chat session."""

    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None
    user_id: Optional[str] = None
    service_type: Optional[str] = None


class SessionUpdate(BaseModel):
    """Request body for renaming a chat session."""

    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None


class MessageCreate(BaseModel):
    """Defines the structure for message creation requests"""

    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)
