"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as messages/store.py).
UserStore is the repository; the _row_to_* functions are the mappers.
Route, action and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are normalised (stripped, lowercased) on every write and lookup so
  "Ada@Example.com" and "ada@example.com" are the same account.

  Session and verification timestamps are written with a fixed-width ISO 8601
  format (microseconds always present) so string comparison in SQL orders
  them correctly.

Layer rule: no imports from api/, web/, actions/, or messages/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account, Role, Session, User, Verification

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False, server_default=""),
    Column("image", Text),
    Column("role", String(16), nullable=False, server_default=Role.USER.value),
    Column("hashed_password", Text),  # NULL for OAuth / magic-link users
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("provider", String(30), nullable=False),
    Column("subject", String(255), nullable=False),
    Column("created_at", String(40), nullable=False),
    UniqueConstraint("provider", "subject", name="uq_accounts_provider_subject"),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("expires_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
)

_verifications = Table(
    "verifications",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(255), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("callback_url", Text, nullable=False, server_default="/"),
    Column("name", String(255), nullable=False, server_default=""),
    Column("expires_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return iso(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Account, Session and Verification entities.

    Usage:
        store = UserStore("sqlite:///gatehouse.db")
        user_id = store.create_user(User(email="ada@example.com", name="Ada"))
        user = store.get_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers catch it as the "user already exists" signal.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    name=user.name or "",
                    image=user.image,
                    role=Role(user.role).value,
                    hashed_password=user.hashed_password,
                    email_verified=1 if user.email_verified else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, image, role, hashed_password, email_verified.
        role is validated against Role; email_verified is stored as 0/1.

        Returns True if a row was updated, False if user_id was not found.
        """
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        if "email_verified" in fields:
            fields["email_verified"] = 1 if fields["email_verified"] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # OAuth accounts
    # ------------------------------------------------------------------

    def get_by_account(self, provider: str, subject: str) -> User | None:
        """Return the user linked to (provider, subject), or None."""
        query = (
            select(_users)
            .join(_accounts, _accounts.c.user_id == _users.c.id)
            .where((_accounts.c.provider == provider) & (_accounts.c.subject == subject))
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    def link_account(self, user_id: int, provider: str, subject: str) -> int:
        """Link an OAuth identity to a user.

        Raises IntegrityError if the identity is already linked to anyone.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    user_id=user_id,
                    provider=provider,
                    subject=subject,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_accounts(self, user_id: int) -> list[Account]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _accounts.select().where(_accounts.c.user_id == user_id).order_by(_accounts.c.provider)
            ).fetchall()
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    user_id=session.user_id,
                    expires_at=session.expires_at,
                    created_at=_now_iso(),
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                )
            )
            conn.commit()

    def get_session(self, session_id: str) -> Session | None:
        """Return the session row, or None if it was deleted or never existed.

        Expiry is the caller's decision (auth.sessions compares expires_at).
        """
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, session_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: int) -> int:
        """Revoke every session a user holds. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete expired sessions and magic-link tokens. Returns rows removed."""
        now = _now_iso()
        with self.engine.connect() as conn:
            sessions = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= now))
            tokens = conn.execute(_verifications.delete().where(_verifications.c.expires_at <= now))
            conn.commit()
        return sessions.rowcount + tokens.rowcount

    # ------------------------------------------------------------------
    # Magic-link verifications
    # ------------------------------------------------------------------

    def create_verification(self, verification: Verification) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _verifications.insert().values(
                    identifier=normalize_email(verification.identifier),
                    token_hash=verification.token_hash,
                    callback_url=verification.callback_url,
                    name=verification.name or "",
                    expires_at=verification.expires_at,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def consume_verification(self, token_hash: str) -> Verification | None:
        """Fetch and delete a verification in one transaction.

        A token can be consumed once: the second caller gets None because the
        DELETE rowcount is checked before the row is returned.
        """
        with self.engine.begin() as conn:
            row = conn.execute(_verifications.select().where(_verifications.c.token_hash == token_hash)).fetchone()
            if row is None:
                return None
            deleted = conn.execute(_verifications.delete().where(_verifications.c.id == row.id))
            if deleted.rowcount == 0:
                return None
        return _row_to_verification(row)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        image=row.image,
        role=row.role,
        hashed_password=row.hashed_password,
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        user_id=row.user_id,
        provider=row.provider,
        subject=row.subject,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        expires_at=row.expires_at,
        created_at=row.created_at,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )


def _row_to_verification(row) -> Verification:
    return Verification(
        id=row.id,
        identifier=row.identifier,
        token_hash=row.token_hash,
        callback_url=row.callback_url,
        name=row.name or "",
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
