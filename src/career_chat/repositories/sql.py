"""SQLAlchemy repository implementation.

Blocking ORM calls run in worker threads so the event loop never waits on
the database driver. Each public method is one unit of work: it commits on
success and rolls back on failure.
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    and_,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ..domain.errors import PersistenceError
from ..domain.models import ChatSession, Message, Role, SessionSummary, User
from .base import Repository

logger = structlog.get_logger()

T = TypeVar("T")

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    sessions = relationship("ChatSessionRow", back_populates="user")


class ChatSessionRow(Base):
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    service_type = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)

    user = relationship("UserRow", back_populates="sessions")
    messages = relationship(
        "MessageRow",
        back_populates="session",
        cascade="all, delete-orphan",
    )


class MessageRow(Base):
    __tablename__ = "messages"

    # Insertion sequence; breaks ties between equal timestamps
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False)
    session_id = Column(
        String(36),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)

    session = relationship("ChatSessionRow", back_populates="messages")


def _to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_session(row: ChatSessionRow) -> ChatSession:
    return ChatSession(
        id=UUID(row.id),
        title=row.title,
        description=row.description,
        user_id=row.user_id,
        service_type=row.service_type,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_message(row: MessageRow) -> Message:
    return Message(
        id=UUID(row.id),
        session_id=UUID(row.session_id),
        role=Role(row.role),
        content=row.content,
        created_at=row.created_at,
    )


class SQLRepository(Repository):
    """Relational record store backed by any SQLAlchemy-supported database."""

    def __init__(self, database_url: str) -> None:
        engine_args = {}
        if database_url.startswith("sqlite"):
            engine_args["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_args["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_args)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )
        Base.metadata.create_all(self.engine)
        logger.info("repository_initialized", backend=self.engine.dialect.name)

    def close(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        def call() -> T:
            with self._unit_of_work() as db:
                return work(db)

        try:
            return await asyncio.to_thread(call)
        except SQLAlchemyError as e:
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise PersistenceError(f"{operation} failed", cause=e) from e

    async def upsert_user(
        self, user_id: str, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        def work(db: Session) -> User:
            row = db.get(UserRow, user_id)
            if row is None:
                row = UserRow(id=user_id, name=name, email=email)
                db.add(row)
                db.flush()
                logger.info("user_created", user_id=user_id)
            return _to_user(row)

        try:
            return await self._run("upsert_user", work)
        except PersistenceError as e:
            # A concurrent request inserted the same id first
            if isinstance(e.cause, IntegrityError):
                user = await self.get_user(user_id)
                if user is not None:
                    return user
            raise

    async def get_user(self, user_id: str) -> Optional[User]:
        def work(db: Session) -> Optional[User]:
            row = db.get(UserRow, user_id)
            return _to_user(row) if row else None

        return await self._run("get_user", work)

    async def create_session(self, session: ChatSession) -> ChatSession:
        def work(db: Session) -> ChatSession:
            db.add(
                ChatSessionRow(
                    id=str(session.id),
                    title=session.title,
                    description=session.description,
                    user_id=session.user_id,
                    service_type=session.service_type,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                )
            )
            return session

        created = await self._run("create_session", work)
        logger.info("session_created", session_id=str(created.id))
        return created

    async def get_session(self, session_id: UUID) -> Optional[ChatSession]:
        def work(db: Session) -> Optional[ChatSession]:
            row = db.get(ChatSessionRow, str(session_id))
            return _to_session(row) if row else None

        return await self._run("get_session", work)

    async def list_sessions(
        self, user_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[SessionSummary]:
        def work(db: Session) -> List[SessionSummary]:
            counts = (
                select(MessageRow.session_id, func.count().label("message_count"))
                .group_by(MessageRow.session_id)
                .subquery()
            )
            ranked = select(
                MessageRow,
                func.row_number()
                .over(
                    partition_by=MessageRow.session_id,
                    order_by=(MessageRow.created_at.desc(), MessageRow.seq.desc()),
                )
                .label("recency"),
            ).subquery()
            latest = aliased(MessageRow, ranked)

            query = (
                select(ChatSessionRow, counts.c.message_count, latest)
                .outerjoin(counts, counts.c.session_id == ChatSessionRow.id)
                .outerjoin(
                    latest,
                    and_(latest.session_id == ChatSessionRow.id, ranked.c.recency == 1),
                )
            )
            if user_id is not None:
                query = query.where(ChatSessionRow.user_id == user_id)
            query = (
                query.order_by(
                    ChatSessionRow.updated_at.desc(),
                    ChatSessionRow.created_at.desc(),
                    ChatSessionRow.id.desc(),
                )
                .offset(offset)
                .limit(limit)
            )

            return [
                SessionSummary(
                    **_to_session(row).model_dump(),
                    message_count=count or 0,
                    last_message=_to_message(message) if message is not None else None,
                )
                for row, count, message in db.execute(query)
            ]

        return await self._run("list_sessions", work)

    async def update_session(
        self,
        session_id: UUID,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ) -> Optional[ChatSession]:
        def work(db: Session) -> Optional[ChatSession]:
            row = db.get(ChatSessionRow, str(session_id))
            if row is None:
                return None
            if title is not None:
                row.title = title
            if description is not None:
                row.description = description
            if updated_at is not None:
                row.updated_at = updated_at
            db.flush()
            return _to_session(row)

        return await self._run("update_session", work)

    async def delete_session(self, session_id: UUID) -> bool:
        def work(db: Session) -> bool:
            row = db.get(ChatSessionRow, str(session_id))
            if row is None:
                return False
            db.delete(row)
            return True

        deleted = await self._run("delete_session", work)
        if deleted:
            logger.info("session_deleted", session_id=str(session_id))
        return deleted

    async def add_message(self, message: Message) -> Message:
        def work(db: Session) -> Message:
            if db.get(ChatSessionRow, str(message.session_id)) is None:
                raise PersistenceError(f"Session {message.session_id} not found")
            db.add(
                MessageRow(
                    id=str(message.id),
                    session_id=str(message.session_id),
                    role=message.role.value,
                    content=message.content,
                    created_at=message.created_at,
                )
            )
            return message

        stored = await self._run("add_message", work)
        logger.info(
            "message_added",
            session_id=str(message.session_id),
            message_role=message.role.value,
        )
        return stored

    async def get_messages(
        self, session_id: UUID, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        def work(db: Session) -> List[Message]:
            query = (
                select(MessageRow)
                .where(MessageRow.session_id == str(session_id))
                .order_by(MessageRow.created_at.asc(), MessageRow.seq.asc())
                .offset(offset)
            )
            if limit is not None:
                query = query.limit(limit)
            return [_to_message(row) for row in db.scalars(query)]

        return await self._run("get_messages", work)
