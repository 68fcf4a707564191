"""
messages/store.py -- SQLAlchemy-backed persistence for contact messages.

Uses SQLAlchemy Core (not ORM) so messages/models.py stays the authoritative
domain representation. Swapping SQLite for PostgreSQL is a connection string
change.

Pattern: Repository + Data Mapper. MessageStore is the repository;
_row_to_message is the mapper.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = MessageStore("sqlite:///gatehouse.db")
    message_id = store.create_message(Message(name="Ada", email="ada@example.com", message="Hi"))
    recent = store.list_messages(limit=20)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from messages.models import Message

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_messages = Table(
    "messages",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("message", Text, nullable=False),
    Column("created_at", String(40), nullable=False, index=True),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MessageStore:
    """Repository for contact Message records."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def create_message(self, message: Message) -> int:
        """Insert one message and return its ID. created_at is set here."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _messages.insert().values(
                    name=message.name,
                    email=message.email,
                    message=message.message,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_message(self, message_id: int) -> Optional[Message]:
        with self.engine.connect() as conn:
            row = conn.execute(_messages.select().where(_messages.c.id == message_id)).fetchone()
        return _row_to_message(row) if row is not None else None

    def list_messages(self, limit: int = 50, offset: int = 0) -> list[Message]:
        """Return messages newest first. limit is clamped to 1..200."""
        limit = max(1, min(limit, 200))
        with self.engine.connect() as conn:
            rows = conn.execute(
                _messages.select()
                .order_by(_messages.c.created_at.desc(), _messages.c.id.desc())
                .limit(limit)
                .offset(max(0, offset))
            ).fetchall()
        return [_row_to_message(r) for r in rows]

    def count_messages(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_messages)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_message(row) -> Message:
    return Message(
        id=row.id,
        name=row.name,
        email=row.email,
        message=row.message,
        created_at=row.created_at,
    )
