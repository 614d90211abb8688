"""
accounts/store.py -- SQLAlchemy Core persistence layer for registered accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_record is the mapper. Route, auth, and CLI code never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL built from input.

Email uniqueness:
  UNIQUE(email) lives in the table definition, not only in application code.
  The registration flow checks exists_by_email() first for a friendly error,
  but two concurrent requests can both pass that check. The constraint turns
  the loser's INSERT into an IntegrityError, which insert() reports as
  Conflict rather than letting a duplicate row in.

Schema lifecycle:
  ensure_schema() is run on every startup and is safe to race: it emits
  CREATE TABLE IF NOT EXISTS instead of checking first and creating second.
  insert() calls it again when the table has gone missing (dropped by hand,
  fresh database file) so a registration never fails on "no such table".

  Legacy-width correction: old installs created email as VARCHAR(255). Under
  utf8mb4 a unique index over 255 chars exceeds MySQL's 767-byte key limit,
  so ensure_schema() narrows the column to 191 where the backend enforces
  widths. SQLite ignores declared widths, so nothing is altered there.

interests:
  Stored as a JSON array in a TEXT column. Encoded on every write, decoded on
  every read (_row_to_record). Callers only ever see list[str].

Layer rule: no imports from api/, auth/, or uploads/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, inspect, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.schema import CreateTable

from accounts.models import Page, UserRecord
from core.errors import Conflict, StoreError

logger = logging.getLogger("doregister.accounts")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'doregister.db'}"

TABLE_NAME = "doregister_users"

# Widest email column that still fits a unique index under utf8mb4 on MySQL.
EMAIL_MAX_LENGTH = 191

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    TABLE_NAME,
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("full_name", String(255), nullable=False),
    Column("email", String(EMAIL_MAX_LENGTH), nullable=False, unique=True),
    Column("password", String(255), nullable=False),  # bcrypt hash, never plaintext
    Column("phone_number", String(50), nullable=False),
    Column("country", String(100), nullable=False),
    Column("city", String(100)),
    Column("gender", String(20)),
    Column("date_of_birth", String(10)),  # YYYY-MM-DD
    Column("interests", Text),  # JSON array serialized as text
    Column("profile_photo", String(255)),  # blob store reference
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update() may touch. id and created_at are immutable; updated_at is
# always set by the store itself.
_MUTABLE_FIELDS = {
    "full_name",
    "email",
    "password_hash",
    "phone_number",
    "country",
    "city",
    "gender",
    "date_of_birth",
    "interests",
    "profile_photo",
}

_OPTIONAL_FIELDS = ("city", "gender", "date_of_birth", "profile_photo")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _blank_to_none(value: str | None) -> str | None:
    """Collapse "" and whitespace-only values to None for optional columns."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def encode_interests(interests: Iterable[str] | None) -> str | None:
    """Serialize a tag sequence for the interests column. Empty -> NULL."""
    tags = [str(t) for t in (interests or [])]
    return json.dumps(tags) if tags else None


def decode_interests(raw: str | None) -> list[str]:
    """Inverse of encode_interests. Malformed text decodes to an empty list."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Undecodable interests value in %s; treating as empty", TABLE_NAME)
        return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def sanitize_ids(ids: Iterable[object] | None) -> list[int]:
    """Coerce raw ids to positive ints, dropping invalid ones and duplicates.

    Order of first appearance is preserved. Booleans are rejected even though
    bool is an int subclass -- True is not a record id.
    """
    result: list[int] = []
    seen: set[int] = set()
    for raw in ids or []:
        if isinstance(raw, bool):
            continue
        try:
            value = int(str(raw).strip())
        except (TypeError, ValueError):
            continue
        if value > 0 and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def narrow_email_statement(dialect_name: str) -> str | None:
    """Return the DDL that narrows the email column, or None if not applicable.

    Table and column names are module constants, not user input, so string
    interpolation is safe here: DDL cannot bind identifiers as parameters.
    """
    if dialect_name in ("mysql", "mariadb"):
        return f"ALTER TABLE {TABLE_NAME} MODIFY email VARCHAR({EMAIL_MAX_LENGTH}) NOT NULL"
    if dialect_name == "postgresql":
        return f"ALTER TABLE {TABLE_NAME} ALTER COLUMN email TYPE VARCHAR({EMAIL_MAX_LENGTH})"
    return None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for UserRecord entities.

    Usage:
        store = AccountStore("sqlite:///doregister.db")
        user_id = store.insert(UserRecord(full_name="A", email="a@x.com", ...))
        record = store.find_by_email("a@x.com")
        records = store.list_records(limit=20, offset=0)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # TestClient and the ASGI server share this engine across threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        self.ensure_schema()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def ensure_schema(self) -> None:
        """Create the accounts table if absent and correct a legacy email width.

        Idempotent. Uses CREATE TABLE IF NOT EXISTS so concurrent first-time
        callers cannot trip over each other the way check-then-create would.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(CreateTable(_users, if_not_exists=True))
                self._narrow_legacy_email(conn)
                conn.commit()
        except SQLAlchemyError as exc:
            logger.exception("Could not create or update %s", TABLE_NAME)
            raise StoreError("Failed to create database table. Please check error logs.") from exc

    def table_exists(self) -> bool:
        """Return True if the accounts table is present in the database."""
        return inspect(self.engine).has_table(TABLE_NAME)

    def _narrow_legacy_email(self, conn: Connection) -> None:
        width = self._email_width(conn)
        if width is None or width <= EMAIL_MAX_LENGTH:
            return
        statement = narrow_email_statement(conn.dialect.name)
        if statement is None:
            logger.debug("email column is VARCHAR(%d) but %s does not enforce widths", width, conn.dialect.name)
            return
        logger.info("Narrowing %s.email from VARCHAR(%d) to VARCHAR(%d)", TABLE_NAME, width, EMAIL_MAX_LENGTH)
        conn.execute(text(statement))

    @staticmethod
    def _email_width(conn: Connection) -> int | None:
        for column in inspect(conn).get_columns(TABLE_NAME):
            if column["name"] == "email":
                return getattr(column["type"], "length", None)
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, record: UserRecord) -> int:
        """Persist a new record and return its assigned id.

        Sets created_at and updated_at. Raises Conflict when the email is
        already taken (including the race where it was taken after the
        caller's existence check) and StoreError for any other backend
        failure. The backend detail is logged here and never put on the
        raised exception.
        """
        if not record.password_hash:
            raise ValueError("password_hash is required")
        now = _now_iso()
        values = {
            "full_name": record.full_name,
            "email": record.email,
            "password": record.password_hash,
            "phone_number": record.phone_number,
            "country": record.country,
            "city": _blank_to_none(record.city),
            "gender": _blank_to_none(record.gender),
            "date_of_birth": _blank_to_none(record.date_of_birth),
            "interests": encode_interests(record.interests),
            "profile_photo": _blank_to_none(record.profile_photo),
            "created_at": now,
            "updated_at": now,
        }
        try:
            if not self.table_exists():
                logger.warning("%s missing at insert time; creating it", TABLE_NAME)
                self.ensure_schema()
            with self.engine.connect() as conn:
                result = conn.execute(_users.insert().values(**values))
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            if self.exists_by_email(record.email):
                raise Conflict() from exc
            logger.exception("Insert into %s violated a constraint", TABLE_NAME)
            raise StoreError() from exc
        except SQLAlchemyError as exc:
            logger.exception("Insert into %s failed", TABLE_NAME)
            raise StoreError() from exc

    def update(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing record and refresh updated_at.

        Accepted fields: see _MUTABLE_FIELDS. interests may be any sequence of
        strings; it is encoded here. Blank optional fields become NULL.

        Returns True if a row was updated, False if user_id was not found.
        Raises Conflict if the new email belongs to another record, and
        StoreError for any other constraint or backend failure.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        values = dict(fields)
        if "password_hash" in values:
            values["password"] = values.pop("password_hash")
            if not values["password"]:
                raise ValueError("password_hash cannot be empty")
        if "interests" in values:
            values["interests"] = encode_interests(values["interests"])
        for name in _OPTIONAL_FIELDS:
            if name in values:
                values[name] = _blank_to_none(values[name])
        values["updated_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            if "email" in values:
                owner = self.find_by_email(values["email"])
                if owner is not None and owner.id != user_id:
                    raise Conflict() from exc
            logger.exception("Update of %s id=%s violated a constraint", TABLE_NAME, user_id)
            raise StoreError() from exc
        except SQLAlchemyError as exc:
            logger.exception("Update of %s id=%s failed", TABLE_NAME, user_id)
            raise StoreError() from exc
        return result.rowcount > 0

    def delete_by_ids(self, ids: Iterable[object] | None) -> int:
        """Delete every record whose id is in ids and return how many went.

        ids is sanitized first (sanitize_ids). Empty or all-invalid input is
        a no-op returning 0. Ids that match nothing simply do not count.
        """
        clean = sanitize_ids(ids)
        if not clean:
            return 0
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.delete().where(_users.c.id.in_(clean)))
                conn.commit()
        except SQLAlchemyError as exc:
            logger.exception("Bulk delete from %s failed", TABLE_NAME)
            raise StoreError() from exc
        logger.info("Deleted %d record(s) from %s", result.rowcount, TABLE_NAME)
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> UserRecord | None:
        """Look up a record by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_record(row) if row is not None else None

    def find_by_id(self, user_id: int) -> UserRecord | None:
        """Look up a record by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_record(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        """Return True if a record with this email exists. COUNT only, no row fetch."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.email == email)
            ).scalar()
        return (result or 0) > 0

    def list_records(self, limit: int, offset: int = 0) -> list[UserRecord]:
        """Return up to limit records, newest created first, skipping offset.

        Offset pagination is approximate under concurrent writes: a record
        inserted between two page fetches shifts later pages by one.
        """
        if limit <= 0:
            return []
        offset = max(offset, 0)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select()
                .order_by(_users.c.created_at.desc(), _users.c.id.desc())
                .limit(limit)
                .offset(offset)
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        """Return the total number of records."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def page(self, page: int, per_page: int) -> Page:
        """Return page number ``page`` (1-based) of the newest-first listing."""
        page = max(page, 1)
        records = self.list_records(per_page, (page - 1) * per_page)
        return Page(records=records, page=page, per_page=per_page, total=self.count())

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_record(row) -> UserRecord:
    return UserRecord(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        password_hash=row.password,
        phone_number=row.phone_number,
        country=row.country,
        city=row.city,
        gender=row.gender,
        date_of_birth=row.date_of_birth,
        interests=decode_interests(row.interests),
        profile_photo=row.profile_photo,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
