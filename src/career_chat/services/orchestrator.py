"""Session and message workflows.

The orchestrator is the only component that mutates sessions and messages
and the only one that calls the generation provider. A send is a sequence of
individually atomic writes:

    1. persist the user turn
    2. load the transcript
    3. assemble instruction and turns
    4. call the provider
    5. persist the assistant turn
    6. bump the session's ``updated_at``

If step 4 fails the user turn stays stored and ``GenerationError`` is raised;
``retry_last_exchange`` later re-runs steps 2-6 without writing the user turn
again. ``updated_at`` only moves once a full exchange has been stored.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Union
from uuid import UUID

import structlog

from ..domain.errors import GenerationError, NotFoundError, ValidationError
from ..domain.models import (
    MAX_CONTENT_LENGTH,
    MAX_TITLE_LENGTH,
    ChatSession,
    Exchange,
    Message,
    Role,
    SessionSummary,
)
from ..repositories.base import Repository
from .assembler import ConversationAssembler
from .llm import GenerationProvider

logger = structlog.get_logger()

SessionId = Union[UUID, str]

_TICK = timedelta(microseconds=1)


def _after(*moments: datetime) -> datetime:
    """Current time, forced strictly later than every given moment."""
    return max(datetime.utcnow(), *(m + _TICK for m in moments))


def _parse_session_id(session_id: SessionId) -> UUID:
    if isinstance(session_id, UUID):
        return session_id
    try:
        return UUID(str(session_id))
    except ValueError as e:
        raise ValidationError(f"Malformed session id: {session_id!r}") from e


def _require_text(value: Optional[str], name: str, max_length: int) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} must not be empty")
    if len(value) > max_length:
        raise ValidationError(f"{name} exceeds {max_length} characters")
    return value


class SessionOrchestrator:
    """Create, list, converse in and delete chat sessions."""

    def __init__(
        self,
        repository: Repository,
        provider: GenerationProvider,
        assembler: Optional[ConversationAssembler] = None,
        temperature: float = 0.7,
        allow_anonymous: bool = False,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.assembler = assembler or ConversationAssembler()
        self.temperature = temperature
        self.allow_anonymous = allow_anonymous

    async def create_session(
        self,
        title: str,
        user_id: Optional[str],
        description: Optional[str] = None,
        service_type: Optional[str] = None,
    ) -> ChatSession:
        """Ensure the owning user exists, then create a session for them."""
        title = _require_text(title, "title", MAX_TITLE_LENGTH)
        if user_id is None:
            if not self.allow_anonymous:
                raise ValidationError("user_id is required")
        else:
            # Identifiers are opaque but never padded: " u1" is the same user as "u1"
            user_id = user_id.strip()
            if not user_id:
                raise ValidationError("user_id must not be empty")

        if user_id is not None:
            await self.repository.upsert_user(user_id)

        session = await self.repository.create_session(
            ChatSession(
                title=title,
                description=description,
                user_id=user_id,
                service_type=service_type,
            )
        )
        logger.info(
            "chat_session_created",
            session_id=str(session.id),
            user_id=user_id,
            service_type=service_type,
        )
        return session

    async def get_session(self, session_id: SessionId) -> ChatSession:
        sid = _parse_session_id(session_id)
        session = await self.repository.get_session(sid)
        if session is None:
            raise NotFoundError(f"Session {sid} not found")
        return session

    async def list_sessions(
        self, user_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[SessionSummary]:
        """Sessions by most recent completed exchange, each with its latest message.

        Without ``user_id`` every session is returned.
        """
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        return await self.repository.list_sessions(user_id=user_id, limit=limit, offset=offset)

    async def get_messages(
        self, session_id: SessionId, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        """Transcript oldest first. An unknown session yields an empty list."""
        return await self.repository.get_messages(
            _parse_session_id(session_id), limit=limit, offset=offset
        )

    async def send_message(self, session_id: SessionId, content: str) -> Exchange:
        """Store the user's turn, generate the reply and store it."""
        content = _require_text(content, "content", MAX_CONTENT_LENGTH)
        session = await self.get_session(session_id)

        user_message = await self.repository.add_message(
            Message(session_id=session.id, role=Role.USER, content=content)
        )
        logger.info(
            "user_message_stored",
            session_id=str(session.id),
            content_length=len(content),
        )
        return await self._complete_exchange(session, user_message)

    async def retry_last_exchange(self, session_id: SessionId) -> Exchange:
        """Generate a reply for a trailing unanswered user turn."""
        session = await self.get_session(session_id)
        history = await self.repository.get_messages(session.id)
        if not history or history[-1].role is not Role.USER:
            raise ValidationError("The last message already has a reply; nothing to retry")

        logger.info("exchange_retry", session_id=str(session.id))
        return await self._complete_exchange(session, history[-1])

    async def _complete_exchange(self, session: ChatSession, user_message: Message) -> Exchange:
        history = await self.repository.get_messages(session.id)
        conversation = self.assembler.assemble(history, service_type=session.service_type)

        try:
            text = await self.provider.generate(
                conversation.system_instruction,
                conversation.turns,
                temperature=self.temperature,
            )
        except GenerationError as e:
            logger.error("generation_failed", session_id=str(session.id), error=e.message)
            raise
        except Exception as e:
            logger.error("generation_failed", session_id=str(session.id), error=str(e))
            raise GenerationError(f"Generation failed: {e}", cause=e) from e

        if not text or not text.strip():
            raise GenerationError("Generation returned an empty response")

        assistant_message = await self.repository.add_message(
            Message(
                session_id=session.id,
                role=Role.ASSISTANT,
                content=text,
                created_at=_after(user_message.created_at),
            )
        )
        await self.repository.update_session(
            session.id,
            updated_at=_after(session.updated_at, assistant_message.created_at),
        )
        logger.info(
            "exchange_completed",
            session_id=str(session.id),
            history_turns=len(conversation.turns),
            response_length=len(text),
        )
        return Exchange(user_message=user_message, assistant_message=assistant_message)

    async def rename_session(
        self, session_id: SessionId, title: str, description: Optional[str] = None
    ) -> ChatSession:
        title = _require_text(title, "title", MAX_TITLE_LENGTH)
        current = await self.get_session(session_id)
        updated = await self.repository.update_session(
            current.id,
            title=title,
            description=description,
            updated_at=_after(current.updated_at),
        )
        if updated is None:
            raise NotFoundError(f"Session {current.id} not found")
        return updated

    async def delete_session(self, session_id: SessionId) -> None:
        """Delete a session together with its messages."""
        sid = _parse_session_id(session_id)
        if not await self.repository.delete_session(sid):
            raise NotFoundError(f"Session {sid} not found")
        logger.info("chat_session_deleted", session_id=str(sid))
