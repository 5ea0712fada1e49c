from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from supportchat.app.storage.contracts import (
    ConversationRecord,
    MessageRecord,
    StorageError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ConversationRow(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class MessageRow(Base):
    __tablename__ = "messages"

    # Insertion order; breaks created_at ties.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4())
    )
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conversations.id"), index=True, nullable=False
    )
    # "user" | "ai"
    sender: Mapped[str] = mapped_column(String(20), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _conversation_record(row: ConversationRow) -> ConversationRecord:
    return ConversationRecord(id=row.id, created_at=_as_utc(row.created_at))


def _message_record(row: MessageRow) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        conversation_id=row.conversation_id,
        sender=row.sender,
        text=row.text,
        created_at=_as_utc(row.created_at),
    )


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class SqlRecordStore:
    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self._database_url = database_url
        self._echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    def open(self) -> None:
        if self._engine is not None:
            return
        try:
            engine = build_engine(self._database_url, echo=self._echo)
            Base.metadata.create_all(bind=engine)
        except ImportError as exc:
            raise StorageError(
                f"Database driver for {self._database_url.split(':', 1)[0]} "
                "is not installed"
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageError("Unable to open record store") from exc
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None

    def _session(self):
        if self._session_factory is None:
            raise StorageError("Record store is not open")
        return self._session_factory()

    def create_conversation(self) -> ConversationRecord:
        try:
            with self._session() as session:
                row = ConversationRow(id=str(uuid.uuid4()), created_at=_utcnow())
                session.add(row)
                session.commit()
                return _conversation_record(row)
        except SQLAlchemyError as exc:
            raise StorageError("Unable to create conversation") from exc

    def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        try:
            with self._session() as session:
                row = session.get(ConversationRow, conversation_id)
                return _conversation_record(row) if row else None
        except SQLAlchemyError as exc:
            raise StorageError("Unable to load conversation") from exc

    def append_message(
        self, *, conversation_id: str, sender: str, text: str
    ) -> MessageRecord:
        try:
            with self._session() as session:
                row = MessageRow(
                    id=str(uuid.uuid4()),
                    conversation_id=conversation_id,
                    sender=sender,
                    text=text,
                    created_at=_utcnow(),
                )
                session.add(row)
                session.commit()
                return _message_record(row)
        except SQLAlchemyError as exc:
            raise StorageError("Unable to store message") from exc

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        stmt = (
            select(MessageRow)
            .where(MessageRow.conversation_id == conversation_id)
            .order_by(MessageRow.created_at.asc(), MessageRow.seq.asc())
        )
        try:
            with self._session() as session:
                return [_message_record(row) for row in session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            raise StorageError("Unable to list messages") from exc
